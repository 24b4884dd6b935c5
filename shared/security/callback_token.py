"""
Verification gate for payment-gateway callbacks.

Xendit signs nothing; it echoes the account's callback verification token in
the ``x-callback-token`` header of every webhook. The reconciler is handed a
verifier at construction and calls it before touching the payload, so no
code path can skip the check.
"""
from typing import Optional, Protocol

from shared.errors import ConfigurationError, Unauthorized

from .api_key import verify_api_key

CALLBACK_TOKEN_HEADER = "x-callback-token"


class CallbackVerifier(Protocol):
    def verify(self, token: Optional[str]) -> None:
        ...


class CallbackTokenVerifier:
    def __init__(self, expected_token: str):
        if not expected_token:
            raise ConfigurationError("Callback verification token is not configured")
        self._expected_token = expected_token

    def verify(self, token: Optional[str]) -> None:
        if not verify_api_key(token, self._expected_token):
            raise Unauthorized("Invalid or missing callback token")
