from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request


def client_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Checkout is anonymous, so buckets are per client IP
    (handles proxies if X-Forwarded-For is set correctly by Uvicorn).
    """
    return f"ip:{get_remote_address(request)}"

CHECKOUT_RATE_LIMIT = "10/minute"

limiter = Limiter(key_func=client_ip)
