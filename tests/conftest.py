"""
Shared fixtures: an app wired to a throwaway SQLite database, a fake Xendit
gateway and a fake notifier.
"""
import os

# main.create_app() runs at import time, so the environment must be complete first
TEST_ENV = {
    "XENDIT_SECRET_KEY": "xnd_development_test",
    "XENDIT_CALLBACK_TOKEN": "callback-token",
    "PAYMENT_REDIRECT_URL": "https://shop.example/paymentsuccess",
    "TWILIO_ACCOUNT_SID": "AC00000000000000000000000000000000",
    "TWILIO_AUTH_TOKEN": "twilio-token",
    "TWILIO_WHATSAPP_FROM": "whatsapp:+14155238886",
    "JWT_SECRET_KEY": "jwt-test-secret",
    "INTERNAL_API_KEY": "internal-key",
    "DATABASE_URL": "sqlite+aiosqlite://",
    "RATE_LIMIT_ENABLED": "false",
    "METRICS_ENABLED": "false",
    "TRACING_ENABLED": "false",
}
os.environ.update(TEST_ENV)

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from main import create_app, create_schema
from services.notification_service.notifier import NotificationResult
from services.payment_service.gateway import Invoice
from shared.config.database import SCHEMAS
from shared.config.settings import Settings

CALLBACK_TOKEN = TEST_ENV["XENDIT_CALLBACK_TOKEN"]
API_KEY = TEST_ENV["INTERNAL_API_KEY"]


def make_settings(**overrides) -> Settings:
    values = dict(
        xendit_secret_key=TEST_ENV["XENDIT_SECRET_KEY"],
        xendit_callback_token=CALLBACK_TOKEN,
        payment_redirect_url=TEST_ENV["PAYMENT_REDIRECT_URL"],
        twilio_account_sid=TEST_ENV["TWILIO_ACCOUNT_SID"],
        twilio_auth_token=TEST_ENV["TWILIO_AUTH_TOKEN"],
        twilio_whatsapp_from=TEST_ENV["TWILIO_WHATSAPP_FROM"],
        jwt_secret_key=TEST_ENV["JWT_SECRET_KEY"],
        internal_api_key=API_KEY,
        database_url=TEST_ENV["DATABASE_URL"],
        rate_limit_enabled=False,
        metrics_enabled=False,
        tracing_enabled=False,
        webhook_lookup_attempts=2,
        webhook_lookup_delay_seconds=0,
    )
    values.update(overrides)
    return Settings(**values)


class FakeGateway:
    def __init__(self):
        self.requests = []
        self.error = None
        self.invoice_id = "inv123"
        self.invoice_url = "https://pay.example/inv123"

    async def create_invoice(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return Invoice(invoice_id=self.invoice_id, invoice_url=self.invoice_url)


class FakeNotifier:
    def __init__(self):
        self.calls = []
        self.sent = True
        self.error = None

    async def _record(self, kind, *args):
        self.calls.append((kind, *args))
        if self.error is not None:
            raise self.error
        if self.sent:
            return NotificationResult(sent=True, message_sid="SM123")
        return NotificationResult(sent=False, error="delivery failed")

    async def send_order_created(self, order):
        return await self._record("order_created", order.external_id)

    async def send_payment_success(self, order):
        return await self._record("payment_success", order.external_id)

    async def send_verification_code(self, phone, code):
        return await self._record("verification", phone, code)

    def of_kind(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        execution_options={"schema_translate_map": {schema: None for schema in SCHEMAS}},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def app(settings, engine, gateway, notifier):
    return create_app(settings=settings, engine=engine, gateway=gateway, notifier=notifier)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
def checkout_payload():
    return {
        "total": 150000,
        "items": [
            {"productId": "prod-1", "name": "Batik Shirt", "price": 100000, "quantity": 1},
            {"productId": "prod-2", "name": "Sarong", "price": 25000, "quantity": 2},
        ],
        "customer_name": "Siti",
        "customer_email": "siti@example.com",
        "customer_phone": "0812-3456-7890",
    }


@pytest.fixture
def place_order(client, checkout_payload):
    """Run a checkout and return the response body."""
    async def _place(**overrides):
        payload = dict(checkout_payload, **overrides)
        response = await client.post("/payments/checkout", json=payload)
        assert response.status_code == 200, response.text
        return response.json()
    return _place


@pytest.fixture
def send_webhook(client):
    async def _send(body, token=CALLBACK_TOKEN):
        headers = {"x-callback-token": token} if token is not None else {}
        return await client.post("/payments/webhook", json=body, headers=headers)
    return _send


@pytest.fixture
def admin_headers():
    return {"X-Internal-API-Key": API_KEY}
