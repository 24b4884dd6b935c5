from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class OrderItemResponse(BaseModel):
    product_reference: Optional[str]
    name: str
    unit_price: float
    quantity: int

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    external_id: str
    invoice_id: Optional[str]
    xendit_invoice_url: Optional[str]
    amount: int
    currency: str
    status: str
    items: List[OrderItemResponse] = []
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    shipping_address: Optional[dict]
    paid_at: Optional[datetime]
    paid_amount: Optional[float]
    payment_method: Optional[str]
    payment_channel: Optional[str]
    payment_destination: Optional[str]
    notification_sent: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CancelResponse(BaseModel):
    message: str
    external_id: str
    status: str


class AnalyticsSummary(BaseModel):
    total_orders: int
    pending_orders: int
    completed_orders: int
    total_revenue: float


class TurnoverPoint(BaseModel):
    date: str
    amount: float


class AnalyticsResponse(BaseModel):
    summary: AnalyticsSummary
    turnover: List[TurnoverPoint]


class NotificationResponse(BaseModel):
    message: str
    external_id: str
    notification_sent: bool
    error: Optional[str] = None
