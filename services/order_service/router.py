from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .schemas import AnalyticsResponse, CancelResponse, NotificationResponse, OrderResponse
from .service import OrderService

# Admin endpoints: the whole router sits behind the internal key
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


def get_notifier(request: Request):
    return request.app.state.notifier


@router.get("/", response_model=list[OrderResponse])
async def list_orders(
    status: Optional[str] = Query(default=None),
    customer: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_orders(db, status=status, customer=customer, limit=limit, skip=skip)


@router.get("/analytics", response_model=AnalyticsResponse)
async def order_analytics(
    period: str = Query(default="day"),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.analytics(db, period=period)


@router.get("/{external_id}", response_model=OrderResponse)
async def get_order(external_id: str, db: AsyncSession = Depends(get_db)):
    return await OrderService.get_order(db, external_id)


@router.patch("/{external_id}/cancel", response_model=CancelResponse)
async def cancel_order(external_id: str, db: AsyncSession = Depends(get_db)):
    order = await OrderService.cancel_order(db, external_id)
    return CancelResponse(message="Order cancelled", external_id=order.external_id, status=order.status)


@router.post("/{external_id}/notify", response_model=NotificationResponse)
async def send_payment_notification(
    external_id: str,
    db: AsyncSession = Depends(get_db),
    notifier=Depends(get_notifier),
):
    result = await OrderService.send_payment_notification(db, external_id, notifier)
    return NotificationResponse(
        message="Payment notification sent" if result.sent else "Payment notification failed",
        external_id=external_id,
        notification_sent=result.sent,
        error=result.error,
    )
