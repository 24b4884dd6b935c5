from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.config.settings import Settings
from shared.security.dependencies import get_current_user, get_app_settings

from .schemas import (
    MessageResponse,
    RegisterResponse,
    ResendVerificationRequest,
    TokenResponse,
    UserCreate,
    UserLogin,
    UserResponse,
    VerificationSentResponse,
    VerifyRequest,
)
from .service import AuthService

router = APIRouter(tags=["Authentication"])
public_router = APIRouter()

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "auth", "status": "running"}


def get_notifier(request: Request):
    return request.app.state.notifier


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an account and send a WhatsApp verification code",
)
async def register(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    notifier=Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    return await AuthService.register(db, payload, notifier, settings)


@router.post("/verify", response_model=MessageResponse, summary="Confirm the phone number with the code")
async def verify(payload: VerifyRequest, db: AsyncSession = Depends(get_db)):
    await AuthService.verify(db, payload)
    return MessageResponse(message="User verified successfully")


@router.post(
    "/resend-verification",
    response_model=VerificationSentResponse,
    summary="Issue and send a fresh verification code",
)
async def resend_verification(
    payload: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db),
    notifier=Depends(get_notifier),
    settings: Settings = Depends(get_app_settings),
):
    return await AuthService.resend_verification(db, payload.user_id, notifier, settings)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and receive a JWT access token",
)
async def login(
    payload: UserLogin,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    return await AuthService.login(db, payload, settings)


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get the current authenticated user's profile",
)
async def get_me(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AuthService.get_user_by_id(db, int(user_id))
