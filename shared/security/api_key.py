import secrets
from typing import Optional


def verify_api_key(provided_key: Optional[str], expected_key: str) -> bool:
    """Verify an API key using constant-time comparison to prevent timing attacks."""
    if not provided_key or not expected_key:
        return False
    return secrets.compare_digest(str(provided_key), str(expected_key))
