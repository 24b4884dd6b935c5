from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import CALLBACK_TOKEN_HEADER, CHECKOUT_RATE_LIMIT, limiter

from .checkout import CheckoutOrchestrator
from .reconciler import WebhookReconciler
from .schemas import CheckoutRequest, CheckoutResponse, WebhookResponse

# Checkout is called by the storefront and the webhook by Xendit; the webhook
# authenticates itself through the callback token inside the reconciler.
router = APIRouter()
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


def get_checkout_orchestrator(request: Request) -> CheckoutOrchestrator:
    return request.app.state.checkout_orchestrator


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.webhook_reconciler


@router.post("/checkout", response_model=CheckoutResponse)
@limiter.limit(CHECKOUT_RATE_LIMIT)
async def create_checkout(
    request: Request,                          # REQUIRED: slowapi needs this to check IP/Headers
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    result = await orchestrator.checkout(db, payload)
    return CheckoutResponse(
        invoiceUrl=result.invoice_url,
        orderId=result.order_id,
        externalId=result.external_id,
    )


@router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    # The body is parsed by the reconciler, after the token check
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    result = await reconciler.reconcile(db, request.headers.get(CALLBACK_TOKEN_HEADER), payload)
    return result.to_response()
