from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from shared.config.settings import Settings

from .api_key import verify_api_key
from .jwt_handler import verify_access_token

# Defines the expected header format (Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

# Admin and back-office calls carry the internal key
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """Dependency to validate JWT and return the user ID (sub)."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    payload = verify_access_token(token, settings.jwt_secret_key)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    request.state.user_id = user_id
    return user_id


async def verify_internal_api_key(
    api_key: str = Depends(api_key_header),
    settings: Settings = Depends(get_app_settings),
) -> bool:
    """Dependency guarding admin endpoints."""
    if not verify_api_key(api_key, settings.internal_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True
