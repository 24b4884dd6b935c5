from collections import defaultdict
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.notifier import NotificationResult, Notifier, dispatch
from shared.errors import ConflictError, NotFoundError, StoreError, ValidationError
from shared.timeutils import ensure_utc

from .models import Order, OrderStatus
from .repository import OrderRepository
from .schemas import AnalyticsResponse, AnalyticsSummary, TurnoverPoint

logger = structlog.get_logger(__name__)

PERIOD_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m"}


class OrderService:
    @staticmethod
    async def get_order(db: AsyncSession, external_id: str) -> Order:
        order = await OrderRepository.get_by_external_id(db, external_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        status: Optional[str] = None,
        customer: Optional[str] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Order]:
        if status:
            try:
                status = OrderStatus(status.upper()).value
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}") from None
        return await OrderRepository.list_orders(db, status=status, customer=customer, limit=limit, skip=skip)

    @staticmethod
    async def cancel_order(db: AsyncSession, external_id: str) -> Order:
        order = await OrderService.get_order(db, external_id)
        if order.status != OrderStatus.PENDING.value:
            raise ConflictError(f"Order is {order.status} and can no longer be cancelled")

        updated = await OrderRepository.apply_transition(
            db,
            external_id,
            expected_status=OrderStatus.PENDING.value,
            values={"status": OrderStatus.CANCELLED.value},
        )
        if updated is None:
            # Lost a race with the payment webhook
            current = await OrderRepository.get_by_external_id(db, external_id)
            if current is None:
                raise StoreError(f"Order {external_id} vanished during cancel")
            raise ConflictError(f"Order is {current.status} and can no longer be cancelled")

        logger.info("order_cancelled", external_id=external_id)
        return updated

    @staticmethod
    async def send_payment_notification(db: AsyncSession, external_id: str, notifier: Notifier) -> NotificationResult:
        """Send (or re-send) the payment confirmation for a PAID order and record the outcome."""
        order = await OrderService.get_order(db, external_id)
        if order.status != OrderStatus.PAID.value:
            raise ConflictError(f"Order is {order.status}; only PAID orders get a payment notification")
        if not order.customer_phone:
            raise ValidationError("Order has no customer phone")

        result = await dispatch("payment_success", notifier.send_payment_success, order)
        await OrderRepository.record_notification(db, external_id, result.sent, result.error)
        logger.info("payment_notification_resent", external_id=external_id, sent=result.sent, error=result.error)
        return result

    @staticmethod
    async def analytics(db: AsyncSession, period: str = "day") -> AnalyticsResponse:
        if period not in PERIOD_FORMATS:
            raise ValidationError("period must be 'day' or 'month'")
        date_format = PERIOD_FORMATS[period]

        counts = await OrderRepository.count_by_status(db)
        paid_orders = await OrderRepository.list_paid(db)

        total_revenue = 0.0
        buckets: dict[str, float] = defaultdict(float)
        for order in paid_orders:
            revenue = order.paid_amount if order.paid_amount is not None else float(order.amount)
            total_revenue += revenue
            effective_date = ensure_utc(order.paid_at or order.created_at)
            buckets[effective_date.strftime(date_format)] += revenue

        return AnalyticsResponse(
            summary=AnalyticsSummary(
                total_orders=sum(counts.values()),
                pending_orders=counts.get(OrderStatus.PENDING.value, 0),
                completed_orders=counts.get(OrderStatus.PAID.value, 0),
                total_revenue=total_revenue,
            ),
            turnover=[TurnoverPoint(date=key, amount=buckets[key]) for key in sorted(buckets)],
        )
