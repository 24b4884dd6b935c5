"""
Payment webhook reconciliation.

Xendit retries a callback until it gets a 2xx, so every answer here is
chosen with that in mind: anything we understood (including duplicates and
statuses we refuse to apply) is acknowledged with 200, malformed or
unauthenticated calls get a 4xx, and only store failures produce a 5xx.

Repeated deliveries are safe. The status change is a single conditional
UPDATE guarded by the status we observed, so of two concurrent PAID
callbacks exactly one applies the transition and sends the notification.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.notifier import Notifier, dispatch
from services.order_service.models import Order, OrderStatus, can_transition
from services.order_service.repository import OrderRepository
from shared.errors import NotFoundError, StoreError, ValidationError
from shared.observability import shop_webhook_events_total
from shared.security.callback_token import CallbackVerifier
from shared.timeutils import utcnow

from .schemas import WebhookPayload

logger = structlog.get_logger(__name__)

GATEWAY_STATUS_MAP = {
    "PAID": OrderStatus.PAID,
    "SETTLED": OrderStatus.PAID,
    "EXPIRED": OrderStatus.EXPIRED,
    "FAILED": OrderStatus.FAILED,
    "PENDING": OrderStatus.PENDING,
}

APPLIED = "applied"
DUPLICATE = "duplicate"
IGNORED = "ignored"


def map_gateway_status(raw: str) -> Optional[OrderStatus]:
    return GATEWAY_STATUS_MAP.get(raw.strip().upper())


@dataclass
class ReconcileResult:
    order: Order
    old_status: str
    new_status: str
    outcome: str
    message: str

    def to_response(self) -> dict:
        return {
            "message": self.message,
            "order_id": self.order.id,
            "external_id": self.order.external_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "outcome": self.outcome,
            "notification_sent": bool(self.order.notification_sent),
            "processed_at": utcnow(),
        }


class WebhookReconciler:
    def __init__(
        self,
        verifier: CallbackVerifier,
        notifier: Notifier,
        lookup_attempts: int = 3,
        lookup_delay_seconds: float = 0.5,
    ):
        self._verifier = verifier
        self._notifier = notifier
        self._lookup_attempts = max(1, lookup_attempts)
        self._lookup_delay_seconds = lookup_delay_seconds

    async def reconcile(self, db: AsyncSession, token: Optional[str], payload: Any) -> ReconcileResult:
        self._verifier.verify(token)
        event = self._parse(payload)
        log = logger.bind(external_id=event.external_id, gateway_status=event.status)
        log.info("webhook_received", invoice_id=event.id)

        order = await self._find_order(db, event.external_id)
        old_status = order.status

        target = map_gateway_status(event.status)
        if target is None:
            log.warning("webhook_unknown_status", current_status=old_status)
            return self._result(order, old_status, IGNORED, f"Unrecognized status {event.status!r} ignored")

        if old_status == target.value:
            log.info("webhook_duplicate", current_status=old_status)
            return self._result(order, old_status, DUPLICATE, "Webhook already processed")

        if not can_transition(old_status, target):
            log.warning("webhook_transition_rejected", current_status=old_status, target_status=target.value)
            return self._result(
                order, old_status, IGNORED, f"Transition {old_status} -> {target.value} not allowed"
            )

        updated = await OrderRepository.apply_transition(
            db,
            event.external_id,
            expected_status=old_status,
            values=self._transition_values(order, event, target),
        )
        if updated is None:
            return await self._resolve_lost_race(db, event.external_id, target, log)

        log.info("order_status_updated", old_status=old_status, new_status=updated.status)
        if target is OrderStatus.PAID:
            updated = await self._notify_paid(db, updated, log)

        shop_webhook_events_total.labels(outcome=APPLIED).inc()
        return ReconcileResult(
            order=updated,
            old_status=old_status,
            new_status=updated.status,
            outcome=APPLIED,
            message="Webhook processed successfully",
        )

    @staticmethod
    def _parse(payload: Any) -> WebhookPayload:
        if not isinstance(payload, dict) or not payload:
            raise ValidationError("Empty or invalid webhook payload")
        try:
            return WebhookPayload.model_validate(payload)
        except PydanticValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise ValidationError("Missing or invalid webhook fields: " + ", ".join(fields)) from None

    async def _find_order(self, db: AsyncSession, external_id: str) -> Order:
        # The callback can race the checkout commit, so give it a few chances
        for attempt in range(1, self._lookup_attempts + 1):
            order = await OrderRepository.get_by_external_id(db, external_id)
            if order is not None:
                return order
            if attempt < self._lookup_attempts:
                await asyncio.sleep(self._lookup_delay_seconds)
        logger.warning("webhook_order_not_found", external_id=external_id, attempts=self._lookup_attempts)
        raise NotFoundError("Order not found for the provided external_id")

    @staticmethod
    def _transition_values(order: Order, event: WebhookPayload, target: OrderStatus) -> dict:
        values = {"status": target.value}
        if target is OrderStatus.PAID:
            values.update(
                paid_at=event.paid_at or utcnow(),
                paid_amount=event.paid_amount if event.paid_amount is not None else float(order.amount),
                payment_method=event.payment_method,
                payment_channel=event.payment_channel,
                payment_destination=event.payment_destination,
            )
        return values

    async def _resolve_lost_race(self, db, external_id, target, log) -> ReconcileResult:
        current = await OrderRepository.get_by_external_id(db, external_id)
        if current is None:
            raise StoreError(f"Order {external_id} disappeared during reconciliation")
        if current.status == target.value:
            log.info("webhook_duplicate", current_status=current.status, concurrent=True)
            return self._result(current, current.status, DUPLICATE, "Webhook already processed")
        log.warning("webhook_transition_rejected", current_status=current.status, target_status=target.value)
        return self._result(
            current, current.status, IGNORED, f"Transition {current.status} -> {target.value} not allowed"
        )

    async def _notify_paid(self, db: AsyncSession, order: Order, log) -> Order:
        if not order.customer_phone:
            log.info("payment_notification_skipped", reason="no_customer_phone")
            return order

        result = await dispatch("payment_success", self._notifier.send_payment_success, order)
        try:
            await OrderRepository.record_notification(db, order.external_id, result.sent, result.error)
            log.info("payment_notification_recorded", sent=result.sent, error=result.error)
            refreshed = await OrderRepository.get_by_external_id(db, order.external_id)
        except StoreError:
            # The transition is already committed; a missing flag is not worth a gateway retry
            log.exception("payment_notification_record_failed")
            return order
        return refreshed or order

    @staticmethod
    def _result(order: Order, status: str, outcome: str, message: str) -> ReconcileResult:
        shop_webhook_events_total.labels(outcome=outcome).inc()
        return ReconcileResult(order=order, old_status=status, new_status=status, outcome=outcome, message=message)
