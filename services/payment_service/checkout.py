"""
Checkout orchestration: reserve the order, ask Xendit for a hosted invoice,
commit, then tell the customer.

The order row is inserted inside a transaction before the gateway call so
the unique external_id is claimed up front, but it is only committed once
the invoice exists. A gateway failure rolls the transaction back, which
means no PENDING order is ever stored without a payable link.
"""
import time
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.notifier import Notifier, dispatch
from services.order_service.models import Order, OrderItem, OrderStatus
from services.order_service.repository import ExternalIdConflict, OrderRepository
from shared.config.settings import Settings
from shared.errors import GatewayError, StoreError, ValidationError
from shared.observability import (
    shop_checkout_duration_seconds,
    shop_checkout_total,
    shop_external_id_conflicts_total,
)
from shared.timeutils import utcnow

from .gateway import InvoiceGateway, InvoiceLine, InvoiceRequest
from .schemas import CheckoutRequest

logger = structlog.get_logger(__name__)


def generate_external_id() -> str:
    return f"invoice-{uuid.uuid4().hex}"


def round_amount(total: float) -> int:
    # Half-up, so 1500.5 becomes 1501 rather than banker's-rounding to 1500
    return int(Decimal(str(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class CheckoutResult:
    invoice_url: str
    order_id: int
    external_id: str


class CheckoutOrchestrator:
    def __init__(self, gateway: InvoiceGateway, notifier: Notifier, settings: Settings):
        self._gateway = gateway
        self._notifier = notifier
        self._settings = settings

    def _build_order(self, external_id: str, amount: int, data: CheckoutRequest) -> Order:
        now = utcnow()
        return Order(
            external_id=external_id,
            amount=amount,
            currency=self._settings.invoice_currency,
            status=OrderStatus.PENDING.value,
            customer_name=data.customer_name or "Customer",
            customer_email=data.customer_email,
            customer_phone=data.customer_phone or None,
            shipping_address=data.shipping_address.model_dump() if data.shipping_address else None,
            notification_sent=False,
            created_at=now,
            updated_at=now,
            items=[
                OrderItem(
                    product_reference=item.product_id,
                    name=item.name,
                    unit_price=item.price,
                    quantity=item.quantity,
                )
                for item in data.items
            ],
        )

    def _invoice_request(self, order: Order, data: CheckoutRequest) -> InvoiceRequest:
        return InvoiceRequest(
            external_id=order.external_id,
            amount=order.amount,
            currency=order.currency,
            payer_email=order.customer_email,
            description=f"Payment for {len(data.items)} items",
            duration_seconds=self._settings.invoice_duration_seconds,
            success_redirect_url=self._settings.payment_redirect_url,
            failure_redirect_url=self._settings.failure_redirect_url,
            items=[InvoiceLine(name=i.name, quantity=i.quantity, price=i.price) for i in data.items],
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
        )

    async def _reserve(self, db: AsyncSession, amount: int, data: CheckoutRequest) -> Order:
        attempts = max(1, self._settings.checkout_external_id_attempts)
        for attempt in range(1, attempts + 1):
            order = self._build_order(generate_external_id(), amount, data)
            try:
                return await OrderRepository.reserve(db, order)
            except ExternalIdConflict:
                shop_external_id_conflicts_total.inc()
                logger.warning("external_id_conflict", external_id=order.external_id, attempt=attempt)
        raise StoreError(f"Could not allocate a unique external_id after {attempts} attempts")

    async def checkout(self, db: AsyncSession, data: CheckoutRequest) -> CheckoutResult:
        started = time.perf_counter()
        amount = round_amount(data.total)
        if amount <= 0:
            raise ValidationError("total must be a positive amount")

        order = await self._reserve(db, amount, data)
        log = logger.bind(external_id=order.external_id, amount=amount)

        try:
            invoice = await self._gateway.create_invoice(self._invoice_request(order, data))
        except Exception as exc:
            # Any failure, not only GatewayError, must release the reserved row
            await OrderRepository.rollback(db)
            status = "gateway_error" if isinstance(exc, GatewayError) else "error"
            shop_checkout_total.labels(status=status).inc()
            log.error("checkout_aborted", reason="invoice_creation_failed", error_type=type(exc).__name__)
            raise

        order.invoice_id = invoice.invoice_id
        order.xendit_invoice_url = invoice.invoice_url
        order.invoice_expires_at = invoice.expires_at
        await OrderRepository.commit(db, order)
        log.info("order_created", order_id=order.id, invoice_id=invoice.invoice_id)

        # Post-commit and best effort: the order stands even if the message never arrives
        if order.customer_phone:
            result = await dispatch("order_created", self._notifier.send_order_created, order)
            if not result.sent:
                log.warning("order_created_notification_failed", error=result.error)

        shop_checkout_total.labels(status="success").inc()
        shop_checkout_duration_seconds.observe(time.perf_counter() - started)
        return CheckoutResult(
            invoice_url=invoice.invoice_url,
            order_id=order.id,
            external_id=order.external_id,
        )
