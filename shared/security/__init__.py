from .jwt_handler import create_access_token, verify_access_token
from .api_key import verify_api_key
from .callback_token import CALLBACK_TOKEN_HEADER, CallbackTokenVerifier, CallbackVerifier
from .dependencies import get_current_user, get_app_settings, verify_internal_api_key
from .rate_limiter import CHECKOUT_RATE_LIMIT, limiter

__all__ = [
    "create_access_token",
    "verify_access_token",
    "verify_api_key",
    "CALLBACK_TOKEN_HEADER",
    "CallbackTokenVerifier",
    "CallbackVerifier",
    "get_current_user",
    "get_app_settings",
    "verify_internal_api_key",
    "CHECKOUT_RATE_LIMIT",
    "limiter",
]
