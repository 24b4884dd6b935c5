from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from shared.config.database import SCHEMAS, Base, build_engine, build_session_factory
from shared.config.settings import Settings, get_settings
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import CallbackTokenVerifier, limiter

# IMPORTANT: import models so they register with Base
from services.auth_service import models as auth_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.product_service import models as product_models  # noqa: F401

from services.auth_service.router import router as auth_router, public_router as auth_public
from services.notification_service.notifier import Notifier, TwilioNotifier
from services.order_service.router import router as order_router, public_router as order_public
from services.payment_service.checkout import CheckoutOrchestrator
from services.payment_service.gateway import InvoiceGateway, XenditInvoiceGateway
from services.payment_service.reconciler import WebhookReconciler
from services.payment_service.router import router as payment_router, public_router as payment_public
from services.product_service.router import router as product_router, public_router as product_public


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema in SCHEMAS:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    gateway: Optional[InvoiceGateway] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Build the storefront API.

    Collaborators default to the real Xendit/Twilio clients and the configured
    database; tests pass fakes. Missing configuration raises here, at startup.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings)
    gateway = gateway or XenditInvoiceGateway(settings)
    notifier = notifier or TwilioNotifier(settings)

    app = FastAPI(title="Storefront Payments", version="1.0.0")

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.gateway = gateway
    app.state.notifier = notifier
    app.state.checkout_orchestrator = CheckoutOrchestrator(gateway, notifier, settings)
    app.state.webhook_reconciler = WebhookReconciler(
        verifier=CallbackTokenVerifier(settings.xendit_callback_token),
        notifier=notifier,
        lookup_attempts=settings.webhook_lookup_attempts,
        lookup_delay_seconds=settings.webhook_lookup_delay_seconds,
    )

    # --- OBSERVABILITY BOOTSTRAP ---
    setup_observability(app, "storefront", settings)

    # --- ERRORS & SECURITY ---
    register_exception_handlers(app)
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(payment_public, prefix="/payments")
    app.include_router(payment_router, prefix="/payments", tags=["Payments"])
    app.include_router(order_public, prefix="/orders")
    app.include_router(order_router, prefix="/orders", tags=["Orders"])
    app.include_router(product_public, prefix="/products", tags=["Products"])
    app.include_router(product_router, prefix="/products", tags=["Products"])
    app.include_router(auth_public, prefix="/auth")
    app.include_router(auth_router, prefix="/auth")

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {"service": "storefront", "status": "running"}

    @app.on_event("startup")
    async def startup_event():
        await create_schema(app.state.engine)

    @app.on_event("shutdown")
    async def shutdown_event():
        for client in (app.state.gateway, app.state.notifier):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()
        await app.state.engine.dispose()

    return app


app = create_app()
