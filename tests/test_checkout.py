import pytest
from sqlalchemy import func, select

from services.order_service.models import Order, OrderStatus
from services.order_service.repository import OrderRepository
from services.payment_service import checkout as checkout_module
from services.payment_service.checkout import generate_external_id, round_amount
from shared.errors import GatewayError


async def _count_orders(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count(Order.id)))
        return result.scalar_one()


async def _load(session_factory, external_id):
    async with session_factory() as session:
        return await OrderRepository.get_by_external_id(session, external_id)


async def test_checkout_creates_pending_order_with_invoice(client, checkout_payload, gateway, session_factory):
    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 200
    body = response.json()
    assert body["invoiceUrl"] == "https://pay.example/inv123"
    assert body["externalId"].startswith("invoice-")
    assert isinstance(body["orderId"], int)

    order = await _load(session_factory, body["externalId"])
    assert order.status == OrderStatus.PENDING.value
    assert order.amount == 150000
    assert order.currency == "IDR"
    assert order.invoice_id == "inv123"
    assert order.xendit_invoice_url == "https://pay.example/inv123"
    assert order.customer_email == "siti@example.com"
    assert [(i.name, i.quantity) for i in order.items] == [("Batik Shirt", 1), ("Sarong", 2)]
    assert order.notification_sent is False


async def test_checkout_sends_invoice_request_to_gateway(client, checkout_payload, gateway, settings):
    response = await client.post("/payments/checkout", json=checkout_payload)
    assert response.status_code == 200

    assert len(gateway.requests) == 1
    request = gateway.requests[0]
    assert request.external_id == response.json()["externalId"]
    assert request.amount == 150000
    assert request.currency == "IDR"
    assert request.payer_email == "siti@example.com"
    assert request.description == "Payment for 2 items"
    assert request.duration_seconds == 86400
    assert request.success_redirect_url == settings.payment_redirect_url
    assert request.failure_redirect_url == settings.failure_redirect_url
    assert [line.name for line in request.items] == ["Batik Shirt", "Sarong"]


async def test_checkout_notifies_customer_after_commit(client, checkout_payload, notifier):
    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 200
    assert notifier.of_kind("order_created") == [("order_created", response.json()["externalId"])]


async def test_checkout_without_phone_skips_notification(client, checkout_payload, notifier):
    checkout_payload.pop("customer_phone")
    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 200
    assert notifier.calls == []


async def test_notification_failure_does_not_fail_checkout(client, checkout_payload, notifier, session_factory):
    notifier.error = RuntimeError("twilio down")

    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 200
    order = await _load(session_factory, response.json()["externalId"])
    assert order.status == OrderStatus.PENDING.value


async def test_gateway_failure_leaves_no_order(client, checkout_payload, gateway, notifier, session_factory):
    gateway.error = GatewayError("Xendit rejected invoice: HTTP 400 API_VALIDATION_ERROR")

    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 502
    assert response.json() == {"error": "Payment provider unavailable"}
    assert await _count_orders(session_factory) == 0
    assert notifier.calls == []


@pytest.mark.parametrize(
    "overrides",
    [
        {"customer_email": "not-an-email"},
        {"items": []},
        {"total": 0},
        {"total": -10},
        {"items": [{"productId": "p", "name": "Shirt", "price": 1000, "quantity": 0}]},
    ],
    ids=["bad-email", "no-items", "zero-total", "negative-total", "zero-quantity"],
)
async def test_invalid_checkout_is_rejected_before_gateway(client, checkout_payload, gateway, overrides):
    checkout_payload.update(overrides)

    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 400
    assert "error" in response.json()
    assert gateway.requests == []


async def test_missing_email_reports_field(client, checkout_payload):
    checkout_payload.pop("customer_email")

    response = await client.post("/payments/checkout", json=checkout_payload)

    assert response.status_code == 400
    assert "customer_email" in response.json()["fields"]


async def test_fractional_total_is_rounded_half_up(client, checkout_payload, session_factory):
    checkout_payload["total"] = 1500.5

    response = await client.post("/payments/checkout", json=checkout_payload)

    order = await _load(session_factory, response.json()["externalId"])
    assert order.amount == 1501


async def test_external_id_collision_is_retried(client, checkout_payload, gateway, monkeypatch):
    first = await client.post("/payments/checkout", json=checkout_payload)
    taken = first.json()["externalId"]

    candidates = iter([taken, "invoice-fresh"])
    monkeypatch.setattr(checkout_module, "generate_external_id", lambda: next(candidates))

    second = await client.post("/payments/checkout", json=checkout_payload)

    assert second.status_code == 200
    assert second.json()["externalId"] == "invoice-fresh"
    # The colliding id never reached the gateway
    assert [r.external_id for r in gateway.requests] == [taken, "invoice-fresh"]


def test_generated_external_ids_are_unique():
    ids = {generate_external_id() for _ in range(1000)}
    assert len(ids) == 1000
    assert all(i.startswith("invoice-") for i in ids)


@pytest.mark.parametrize(
    "total,expected",
    [(150000, 150000), (1500.4, 1500), (1500.5, 1501), (2.5, 3), (0.49, 0)],
)
def test_round_amount(total, expected):
    assert round_amount(total) == expected


async def test_unexpected_gateway_exception_still_rolls_back(client, checkout_payload, gateway, session_factory):
    gateway.error = RuntimeError("unexpected")

    with pytest.raises(RuntimeError):
        await client.post("/payments/checkout", json=checkout_payload)

    assert await _count_orders(session_factory) == 0
