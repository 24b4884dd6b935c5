"""
Xendit hosted-invoice client.

Only invoice creation is needed: Xendit hosts the payment page and later
reports the outcome through the webhook handled by the reconciler.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

import httpx
import structlog

from shared.config.settings import Settings
from shared.errors import GatewayError

logger = structlog.get_logger(__name__)


@dataclass
class InvoiceLine:
    name: str
    quantity: int
    price: float


@dataclass
class InvoiceRequest:
    external_id: str
    amount: int
    currency: str
    payer_email: str
    description: str
    duration_seconds: int
    success_redirect_url: str
    failure_redirect_url: str
    items: List[InvoiceLine] = field(default_factory=list)
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass
class Invoice:
    invoice_id: str
    invoice_url: str
    expires_at: Optional[datetime] = None


class InvoiceGateway(Protocol):
    async def create_invoice(self, request: InvoiceRequest) -> Invoice:
        ...


class XenditInvoiceGateway:
    INVOICES_PATH = "/v2/invoices"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        # Xendit uses the secret key as the basic-auth username with an empty password
        self._client = client or httpx.AsyncClient(
            base_url=settings.xendit_api_url,
            auth=(settings.xendit_secret_key, ""),
            timeout=settings.xendit_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _payload(request: InvoiceRequest) -> dict:
        payload = {
            "external_id": request.external_id,
            "amount": request.amount,
            "currency": request.currency,
            "payer_email": request.payer_email,
            "description": request.description,
            "invoice_duration": request.duration_seconds,
            "success_redirect_url": request.success_redirect_url,
            "failure_redirect_url": request.failure_redirect_url,
            "items": [
                {"name": line.name, "quantity": line.quantity, "price": line.price}
                for line in request.items
            ],
        }
        customer = {"email": request.payer_email}
        if request.customer_name:
            customer["given_names"] = request.customer_name
        if request.customer_phone:
            customer["mobile_number"] = request.customer_phone
        payload["customer"] = customer
        return payload

    async def create_invoice(self, request: InvoiceRequest) -> Invoice:
        log = logger.bind(external_id=request.external_id, amount=request.amount)
        try:
            response = await self._client.post(self.INVOICES_PATH, json=self._payload(request))
        except httpx.TimeoutException as exc:
            log.error("xendit_invoice_timeout")
            raise GatewayError("Timed out creating Xendit invoice") from exc
        except httpx.HTTPError as exc:
            log.error("xendit_invoice_transport_error", error=repr(exc))
            raise GatewayError(f"Could not reach Xendit: {exc!r}") from exc

        if response.status_code >= 400:
            error_code = _json_object(response).get("error_code")
            log.error("xendit_invoice_rejected", status_code=response.status_code, error_code=error_code)
            raise GatewayError(f"Xendit rejected invoice: HTTP {response.status_code} {error_code}")

        try:
            body = response.json()
            invoice = Invoice(
                invoice_id=body["id"],
                invoice_url=body["invoice_url"],
                expires_at=_parse_datetime(body.get("expiry_date")),
            )
        except (ValueError, KeyError, TypeError) as exc:
            log.error("xendit_invoice_malformed_response")
            raise GatewayError("Malformed response from Xendit") from exc

        log.info("xendit_invoice_created", invoice_id=invoice.invoice_id)
        return invoice


def _json_object(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
