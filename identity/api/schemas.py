from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from identity.constants import TOKEN_TYPE
from identity.domain.models import TokenPair, User


class RegisterRequest(BaseModel):
    username: str = Field(..., max_length=64, examples=["alice"])
    email: str = Field(..., max_length=320, examples=["alice@example.com"])
    password: str = Field(..., max_length=128)


class RegisterResponse(BaseModel):
    user_id: str


class LoginRequest(BaseModel):
    input: str = Field(..., max_length=320, description="Username or email address")
    password: str = Field(..., max_length=128)


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = TOKEN_TYPE

    @classmethod
    def from_domain(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token)


class TokenRequest(BaseModel):
    token: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutResponse(BaseModel):
    success: bool


class SessionStatusResponse(BaseModel):
    active: bool


class UpdateEmailRequest(BaseModel):
    old_email: str = Field(..., max_length=320)
    new_email: str = Field(..., max_length=320)


class UpdatePasswordRequest(BaseModel):
    old_password: str = Field(..., max_length=128)
    new_password: str = Field(..., max_length=128)


class AmountRequest(BaseModel):
    amount: Decimal = Field(..., max_digits=18, decimal_places=4)


class ConfirmationResponse(BaseModel):
    status: bool = True
    message: str


class UserProfileResponse(BaseModel):
    id: str
    username: str
    email: str
    balance: Decimal
    discount: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_domain(cls, user: User) -> "UserProfileResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            balance=user.balance,
            discount=user.discount,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


__all__ = [
    "AmountRequest",
    "ConfirmationResponse",
    "LoginRequest",
    "LogoutResponse",
    "RefreshRequest",
    "RegisterRequest",
    "RegisterResponse",
    "SessionStatusResponse",
    "TokenPairResponse",
    "TokenRequest",
    "UpdateEmailRequest",
    "UpdatePasswordRequest",
    "UserProfileResponse",
]
