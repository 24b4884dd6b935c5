"""
Customer notifications over WhatsApp (and SMS as a fallback for account
verification) through the Twilio Messages REST API.

Delivery is best effort. Nothing in here raises to the caller: every failure
comes back as ``NotificationResult(sent=False, error=...)`` so the order
workflow can record it and move on.
"""
import json
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import httpx
import structlog

from shared.config.settings import Settings
from shared.observability import shop_notifications_total

from .phone import format_rupiah, mask_phone, normalize_phone

logger = structlog.get_logger(__name__)


@dataclass
class NotificationResult:
    sent: bool
    message_sid: Optional[str] = None
    error: Optional[str] = None


class Notifier(Protocol):
    async def send_order_created(self, order) -> NotificationResult:
        ...

    async def send_payment_success(self, order) -> NotificationResult:
        ...

    async def send_verification_code(self, phone: str, code: str) -> NotificationResult:
        ...


async def dispatch(kind: str, send: Callable[..., Awaitable[NotificationResult]], *args) -> NotificationResult:
    """Run one notification call and never let it fail the caller."""
    try:
        result = await send(*args)
    except Exception as exc:
        logger.exception("notification_dispatch_failed", kind=kind)
        result = NotificationResult(sent=False, error=str(exc) or type(exc).__name__)
    shop_notifications_total.labels(kind=kind, result="sent" if result.sent else "failed").inc()
    return result


def _json_object(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _whatsapp_address(number: str) -> str:
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class TwilioNotifier:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._country_code = settings.default_country_code
        self._messages_path = f"/2010-04-01/Accounts/{settings.twilio_account_sid}/Messages.json"
        self._client = client or httpx.AsyncClient(
            base_url=settings.twilio_api_url,
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            timeout=settings.twilio_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send_order_created(self, order) -> NotificationResult:
        if not order.customer_phone:
            return NotificationResult(sent=False, error="Order has no customer phone")

        customer_name = order.customer_name or "Customer"
        amount = format_rupiah(order.amount)
        body = (
            f"Hi {customer_name}, your order {order.external_id} totaling {amount} has been created. "
            f"Complete your payment here: {order.xendit_invoice_url}"
        )
        return await self._send_whatsapp(
            order.customer_phone,
            body=body,
            content_sid=self._settings.twilio_order_created_template_sid,
            variables={
                "customer_name": customer_name,
                "amount": amount,
                "order_number": order.external_id,
                "invoice_url": order.xendit_invoice_url or "",
            },
        )

    async def send_payment_success(self, order) -> NotificationResult:
        if not order.customer_phone:
            return NotificationResult(sent=False, error="Order has no customer phone")

        customer_name = order.customer_name or "Customer"
        paid = order.paid_amount if order.paid_amount is not None else order.amount
        amount = format_rupiah(paid)
        body = (
            f"Your payment with the total of {amount} for order {order.external_id} "
            f"has been successfully confirmed!"
        )
        return await self._send_whatsapp(
            order.customer_phone,
            body=body,
            content_sid=self._settings.twilio_payment_success_template_sid,
            variables={
                "customer_name": customer_name,
                "amount": amount,
                "order_number": order.external_id,
            },
        )

    async def send_verification_code(self, phone: str, code: str) -> NotificationResult:
        ttl = self._settings.verification_code_ttl_minutes
        body = f"Your verification code is: {code}. This code will expire in {ttl} minutes."

        result = await self._send_whatsapp(phone, body=body)
        if result.sent or not self._settings.twilio_sms_from:
            return result

        logger.info("verification_sms_fallback", to=mask_phone(phone), whatsapp_error=result.error)
        try:
            to = normalize_phone(phone, self._country_code)
        except ValueError as exc:
            return NotificationResult(sent=False, error=str(exc))
        return await self._post_message(to=to, from_=self._settings.twilio_sms_from, body=body)

    async def _send_whatsapp(
        self,
        phone: str,
        body: str,
        content_sid: Optional[str] = None,
        variables: Optional[dict] = None,
    ) -> NotificationResult:
        try:
            to = normalize_phone(phone, self._country_code)
        except ValueError as exc:
            logger.warning("notification_invalid_phone", error=str(exc))
            return NotificationResult(sent=False, error=str(exc))

        return await self._post_message(
            to=_whatsapp_address(to),
            from_=_whatsapp_address(self._settings.twilio_whatsapp_from),
            body=body,
            content_sid=content_sid,
            variables=variables,
        )

    async def _post_message(
        self,
        to: str,
        from_: str,
        body: str,
        content_sid: Optional[str] = None,
        variables: Optional[dict] = None,
    ) -> NotificationResult:
        form = {"To": to, "From": from_}
        if content_sid:
            # Approved Content templates are required outside the 24h WhatsApp session window
            form["ContentSid"] = content_sid
            form["ContentVariables"] = json.dumps(variables or {})
        else:
            form["Body"] = body

        try:
            response = await self._client.post(self._messages_path, data=form)
        except httpx.HTTPError as exc:
            logger.warning("twilio_request_failed", to=mask_phone(to), error=repr(exc))
            return NotificationResult(sent=False, error=f"Twilio request failed: {type(exc).__name__}")

        if response.status_code >= 400:
            detail = _json_object(response)
            logger.warning(
                "twilio_message_rejected",
                to=mask_phone(to),
                status_code=response.status_code,
                code=detail.get("code"),
                more_info=detail.get("more_info"),
            )
            message = detail.get("message") or f"HTTP {response.status_code}"
            return NotificationResult(sent=False, error=f"Twilio error {detail.get('code')}: {message}")

        sid = _json_object(response).get("sid")
        logger.info("twilio_message_sent", to=mask_phone(to), sid=sid)
        return NotificationResult(sent=True, message_sid=sid)
