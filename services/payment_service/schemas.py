from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class CheckoutItem(BaseModel):
    product_id: Optional[str] = Field(default=None, alias="productId")
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)

    class Config:
        populate_by_name = True


class ShippingAddress(BaseModel):
    country: Optional[str] = None
    address: Optional[str] = None
    town: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None


class CheckoutRequest(BaseModel):
    total: float = Field(gt=0)
    items: List[CheckoutItem] = Field(min_length=1)
    customer_name: Optional[str] = None
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None


class CheckoutResponse(BaseModel):
    invoiceUrl: str
    orderId: int
    externalId: str


class WebhookPayload(BaseModel):
    """Invoice callback body as Xendit sends it; unknown keys are ignored."""
    id: Optional[str] = None
    external_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    paid_amount: Optional[float] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_channel: Optional[str] = None
    payment_destination: Optional[str] = None

    class Config:
        extra = "ignore"
        coerce_numbers_to_str = True


class WebhookResponse(BaseModel):
    message: str
    order_id: int
    external_id: str
    old_status: str
    new_status: str
    outcome: str
    notification_sent: bool
    processed_at: datetime
