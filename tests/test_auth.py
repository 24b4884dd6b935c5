from datetime import timedelta

import pytest

from services.auth_service.repository import UserRepository
from shared.timeutils import utcnow

PASSWORD = "correct-horse"


@pytest.fixture
def register(client):
    async def _register(email="siti@example.com", phone="081234567890"):
        response = await client.post(
            "/auth/register",
            json={"email": email, "phone_number": phone, "password": PASSWORD, "name": "Siti"},
        )
        return response
    return _register


def last_code(notifier):
    return notifier.of_kind("verification")[-1][2]


async def test_register_sends_whatsapp_code(register, notifier):
    response = await register()

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "siti@example.com"
    assert body["is_verified"] is False
    assert body["verification_sent"] is True
    (call,) = notifier.of_kind("verification")
    assert call[1] == "081234567890"
    assert len(call[2]) == 6 and call[2].isdigit()


async def test_register_keeps_account_when_delivery_fails(register, notifier):
    notifier.error = RuntimeError("twilio down")

    response = await register()

    assert response.status_code == 201
    assert response.json()["verification_sent"] is False


async def test_duplicate_email_conflicts(register):
    await register()
    response = await register(email="SITI@example.com")
    assert response.status_code == 409


async def test_login_requires_verification(client, register):
    await register()

    response = await client.post("/auth/login", json={"email": "siti@example.com", "password": PASSWORD})

    assert response.status_code == 403
    assert response.json() == {"error": "Account is not verified"}


async def test_verify_then_login_and_fetch_profile(client, register, notifier):
    user = (await register()).json()

    verified = await client.post("/auth/verify", json={"user_id": user["id"], "code": last_code(notifier)})
    assert verified.status_code == 200

    login = await client.post("/auth/login", json={"email": "siti@example.com", "password": PASSWORD})
    assert login.status_code == 200
    token = login.json()["access_token"]
    assert login.json()["token_type"] == "bearer"

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user["id"]
    assert me.json()["is_verified"] is True
    assert me.json()["user_type"] == "customer"


async def test_wrong_code_is_rejected(client, register, notifier):
    user = (await register()).json()
    wrong = "000000" if last_code(notifier) != "000000" else "111111"

    response = await client.post("/auth/verify", json={"user_id": user["id"], "code": wrong})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid verification code"}


async def test_expired_code_is_rejected(client, register, notifier, session_factory):
    user = (await register()).json()
    async with session_factory() as session:
        stored = await UserRepository.get_by_id(session, user["id"])
        stored.verification_code_expires_at = utcnow() - timedelta(minutes=1)
        await UserRepository.save(session, stored)

    response = await client.post("/auth/verify", json={"user_id": user["id"], "code": last_code(notifier)})

    assert response.status_code == 400
    assert response.json() == {"error": "Verification code has expired"}


async def test_resend_issues_a_fresh_code(client, register, notifier):
    user = (await register()).json()

    response = await client.post("/auth/resend-verification", json={"user_id": user["id"]})

    assert response.status_code == 200
    assert response.json()["verification_sent"] is True
    assert len(notifier.of_kind("verification")) == 2
    verified = await client.post("/auth/verify", json={"user_id": user["id"], "code": last_code(notifier)})
    assert verified.status_code == 200


async def test_resend_after_verification_is_rejected(client, register, notifier):
    user = (await register()).json()
    await client.post("/auth/verify", json={"user_id": user["id"], "code": last_code(notifier)})

    response = await client.post("/auth/resend-verification", json={"user_id": user["id"]})

    assert response.status_code == 400


async def test_bad_password_is_unauthorized(client, register):
    await register()
    response = await client.post("/auth/login", json={"email": "siti@example.com", "password": "wrong-pass"})
    assert response.status_code == 401


async def test_me_requires_token(client):
    assert (await client.get("/auth/me")).status_code == 401
    assert (await client.get("/auth/me", headers={"Authorization": "Bearer garbage"})).status_code == 401
