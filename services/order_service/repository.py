from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import translate_store_errors
from shared.errors import StoreError
from shared.timeutils import utcnow

from .models import Order, OrderStatus


class ExternalIdConflict(StoreError):
    """The generated external id is already taken by another order."""


class OrderRepository:

    @staticmethod
    @translate_store_errors
    async def reserve(db: AsyncSession, order: Order) -> Order:
        """Insert the order inside the open transaction without committing it.

        The unique index on external_id is checked here, before any call to
        the payment gateway. The caller either commits or rolls back.
        """
        db.add(order)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            raise ExternalIdConflict(f"external_id {order.external_id} already exists") from exc
        return order

    @staticmethod
    @translate_store_errors
    async def commit(db: AsyncSession, order: Order) -> Order:
        await db.commit()
        return order

    @staticmethod
    @translate_store_errors
    async def rollback(db: AsyncSession) -> None:
        await db.rollback()

    @staticmethod
    @translate_store_errors
    async def get_by_external_id(db: AsyncSession, external_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.external_id == external_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    @translate_store_errors
    async def apply_transition(
        db: AsyncSession,
        external_id: str,
        expected_status: str,
        values: dict,
    ) -> Optional[Order]:
        """Move an order out of ``expected_status`` in one conditional UPDATE.

        Returns the updated order, or None when no row matched because the
        order is no longer in ``expected_status`` (or does not exist).
        """
        values = dict(values, updated_at=utcnow())
        result = await db.execute(
            update(Order)
            .where(Order.external_id == external_id, Order.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount == 0:
            return None
        return await OrderRepository.get_by_external_id(db, external_id)

    @staticmethod
    @translate_store_errors
    async def record_notification(
        db: AsyncSession,
        external_id: str,
        sent: bool,
        error: Optional[str] = None,
    ) -> None:
        now = utcnow()
        await db.execute(
            update(Order)
            .where(Order.external_id == external_id)
            .values(
                notification_sent=sent,
                notification_sent_at=now if sent else None,
                notification_error=error[:512] if error else None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    @staticmethod
    @translate_store_errors
    async def list_orders(
        db: AsyncSession,
        status: Optional[str] = None,
        customer: Optional[str] = None,
        limit: Optional[int] = None,
        skip: int = 0,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if status:
            stmt = stmt.where(Order.status == status)
        if customer:
            stmt = stmt.where(Order.customer_name.ilike(f"%{customer}%"))
        if skip:
            stmt = stmt.offset(skip)
        if limit:
            stmt = stmt.limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    @translate_store_errors
    async def count_by_status(db: AsyncSession) -> dict[str, int]:
        result = await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
        return {status: count for status, count in result.all()}

    @staticmethod
    @translate_store_errors
    async def list_paid(db: AsyncSession) -> list[Order]:
        result = await db.execute(select(Order).where(Order.status == OrderStatus.PAID.value))
        return list(result.scalars().all())
