from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class LoginInputKind(str, Enum):
    USERNAME = "username"
    EMAIL = "email"


@dataclass(slots=True)
class User:
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime
    updated_at: datetime
    balance: Decimal = field(default_factory=lambda: Decimal("0"))
    discount: Decimal = field(default_factory=lambda: Decimal("0"))


@dataclass(slots=True, frozen=True)
class SessionIdentity:
    """Identity bound to a refresh token in the session store."""

    user_id: str
    email: str


@dataclass(slots=True, frozen=True)
class TokenClaims:
    user_id: str
    email: str
    expires_at: datetime


@dataclass(slots=True, frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


__all__ = ["LoginInputKind", "SessionIdentity", "TokenClaims", "TokenPair", "User"]
