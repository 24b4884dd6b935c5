"""
Customer accounts. A new account has to confirm its phone number with a
6-digit code delivered over WhatsApp before it can log in.
"""
import secrets
from datetime import timedelta

import structlog
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.notifier import Notifier, dispatch
from shared.config.settings import Settings
from shared.errors import ConflictError, ForbiddenError, NotFoundError, Unauthorized, ValidationError
from shared.security.jwt_handler import create_access_token
from shared.timeutils import ensure_utc, utcnow

from .models import User
from .repository import UserRepository
from .schemas import (
    RegisterResponse,
    TokenResponse,
    UserCreate,
    UserLogin,
    VerificationSentResponse,
    VerifyRequest,
)

logger = structlog.get_logger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:

    @staticmethod
    def _hash_password(password: str) -> str:
        return _pwd_context.hash(password)

    @staticmethod
    def _verify_password(plain: str, hashed: str) -> bool:
        return _pwd_context.verify(plain, hashed)

    @staticmethod
    def _new_verification_code() -> str:
        return f"{secrets.randbelow(900000) + 100000}"

    @staticmethod
    def _issue_code(user: User, settings: Settings) -> str:
        code = AuthService._new_verification_code()
        user.verification_code = code
        user.verification_code_expires_at = utcnow() + timedelta(minutes=settings.verification_code_ttl_minutes)
        return code

    @staticmethod
    async def register(db: AsyncSession, data: UserCreate, notifier: Notifier, settings: Settings) -> RegisterResponse:
        email = data.email.lower()
        if await UserRepository.get_by_email(db, email):
            raise ConflictError("Email already registered")

        user = User(
            email=email,
            phone_number=data.phone_number,
            name=data.name,
            user_type=data.user_type.value,
            hashed_password=AuthService._hash_password(data.password),
            is_active=True,
            is_verified=False,
            created_at=utcnow(),
        )
        code = AuthService._issue_code(user, settings)
        try:
            user = await UserRepository.create(db, user)
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Email already registered") from None

        # The account is kept even if delivery fails; the client can ask for a resend
        result = await dispatch("verification", notifier.send_verification_code, user.phone_number, code)
        logger.info("user_registered", user_id=user.id, verification_sent=result.sent)
        return RegisterResponse(
            id=user.id,
            email=user.email,
            name=user.name,
            is_verified=user.is_verified,
            verification_sent=result.sent,
        )

    @staticmethod
    async def verify(db: AsyncSession, data: VerifyRequest) -> User:
        user = await AuthService.get_user_by_id(db, data.user_id)

        if not user.verification_code:
            raise ValidationError("No verification code found")
        if not secrets.compare_digest(user.verification_code, data.code):
            raise ValidationError("Invalid verification code")
        expires_at = ensure_utc(user.verification_code_expires_at)
        if expires_at is None or expires_at < utcnow():
            raise ValidationError("Verification code has expired")

        user.is_verified = True
        user.verification_code = None
        user.verification_code_expires_at = None
        user = await UserRepository.save(db, user)
        logger.info("user_verified", user_id=user.id)
        return user

    @staticmethod
    async def resend_verification(
        db: AsyncSession, user_id: int, notifier: Notifier, settings: Settings
    ) -> VerificationSentResponse:
        user = await AuthService.get_user_by_id(db, user_id)
        if user.is_verified:
            raise ValidationError("User is already verified")

        code = AuthService._issue_code(user, settings)
        user = await UserRepository.save(db, user)

        result = await dispatch("verification", notifier.send_verification_code, user.phone_number, code)
        message = (
            "New verification code sent to your WhatsApp"
            if result.sent
            else "Could not deliver the verification code, please try again"
        )
        return VerificationSentResponse(message=message, verification_sent=result.sent)

    @staticmethod
    async def login(db: AsyncSession, data: UserLogin, settings: Settings) -> TokenResponse:
        user = await UserRepository.get_by_email(db, data.email)
        if not user or not AuthService._verify_password(data.password, user.hashed_password):
            raise Unauthorized("Incorrect email or password")
        if not user.is_active:
            raise ForbiddenError("Account is disabled")
        if not user.is_verified:
            raise ForbiddenError("Account is not verified")

        token = create_access_token(
            data={"sub": str(user.id), "role": user.user_type},
            secret_key=settings.jwt_secret_key,
            expires_delta=timedelta(minutes=settings.jwt_expire_minutes),
        )
        return TokenResponse(access_token=token)

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user
