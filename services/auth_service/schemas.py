from pydantic import BaseModel, EmailStr, Field

from .models import UserType


class UserCreate(BaseModel):
    email: EmailStr
    phone_number: str = Field(min_length=6)
    password: str = Field(min_length=8)
    name: str = Field(min_length=1)
    user_type: UserType = UserType.CUSTOMER


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class VerifyRequest(BaseModel):
    user_id: int
    code: str = Field(min_length=6, max_length=6)


class ResendVerificationRequest(BaseModel):
    user_id: int


class RegisterResponse(BaseModel):
    id: int
    email: str
    name: str
    is_verified: bool
    verification_sent: bool


class VerificationSentResponse(BaseModel):
    message: str
    verification_sent: bool


class MessageResponse(BaseModel):
    message: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    phone_number: str
    user_type: str
    is_active: bool
    is_verified: bool

    class Config:
        from_attributes = True
