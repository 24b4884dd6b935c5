from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shared.config.database import Base
from shared.timeutils import utcnow


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED, OrderStatus.CANCELLED}
)

# Nothing ever moves back to PENDING, and terminal orders never move again
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.FAILED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PAID: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = {"schema": "order_schema"}

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(64), unique=True, nullable=False, index=True)
    invoice_id = Column(String(64), nullable=True)
    xendit_invoice_url = Column(String(512), nullable=True)
    invoice_expires_at = Column(DateTime(timezone=True), nullable=True)

    amount = Column(Integer, nullable=False) # rounded total at creation
    currency = Column(String(8), nullable=False, default="IDR")
    status = Column(String(16), nullable=False, default=OrderStatus.PENDING.value, index=True)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    customer_phone = Column(String(32), nullable=True)
    shipping_address = Column(JSON, nullable=True)

    # Populated only on the PAID transition
    paid_at = Column(DateTime(timezone=True), nullable=True)
    paid_amount = Column(Float, nullable=True)
    payment_method = Column(String(64), nullable=True)
    payment_channel = Column(String(64), nullable=True)
    payment_destination = Column(String(128), nullable=True)

    notification_sent = Column(Boolean, nullable=False, default=False)
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    notification_error = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = {"schema": "order_schema"}

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("order_schema.orders.id"), nullable=False)
    product_reference = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="items")
