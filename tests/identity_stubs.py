from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from argon2 import PasswordHasher

from identity.domain.exceptions import (
    RecordNotFoundError,
    SessionStoreError,
    StorageError,
    UniqueViolationError,
)
from identity.domain.models import LoginInputKind, User
from identity.ports.repositories import SessionStore, UserRepository
from identity.security import Argon2PasswordHasher

TEST_SECRET = "test-signing-secret-0123456789abcdef"


def fast_hasher() -> Argon2PasswordHasher:
    return Argon2PasswordHasher(PasswordHasher(time_cost=1, memory_cost=8, parallelism=1))


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(slots=True)
class InMemoryUserRepository(UserRepository):
    users: dict[str, User] = field(default_factory=dict)
    purchases: list[tuple[str, Decimal]] = field(default_factory=list)
    # Forces the advisory availability checks to answer True.
    skip_precheck: bool = False
    fail_with: StorageError | None = None

    async def is_username_available(self, username: str) -> bool:
        self._maybe_fail()
        if self.skip_precheck:
            return True
        return all(user.username != username for user in self.users.values())

    async def is_email_available(self, email: str) -> bool:
        self._maybe_fail()
        if self.skip_precheck:
            return True
        return all(user.email != email for user in self.users.values())

    async def save_user(
        self,
        user_id: str,
        username: str,
        email: str,
        password_hash: str,
        created_at: datetime,
    ) -> str:
        self._maybe_fail()
        for user in self.users.values():
            if user.username == username:
                raise UniqueViolationError("username")
            if user.email == email:
                raise UniqueViolationError("email")
        self.users[user_id] = User(
            id=user_id,
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=created_at,
            updated_at=created_at,
        )
        return user_id

    async def get_user(self, kind: LoginInputKind, value: str) -> User | None:
        self._maybe_fail()
        for user in self.users.values():
            if (kind is LoginInputKind.EMAIL and user.email == value) or (
                kind is LoginInputKind.USERNAME and user.username == value
            ):
                return replace(user)
        return None

    async def get_user_by_id(self, user_id: str) -> User | None:
        self._maybe_fail()
        user = self.users.get(user_id)
        return replace(user) if user is not None else None

    async def update_email(self, user_id: str, new_email: str) -> None:
        self._maybe_fail()
        if any(user.email == new_email and user.id != user_id for user in self.users.values()):
            raise UniqueViolationError("email")
        self._mutate(user_id, email=new_email)

    async def update_password(self, user_id: str, password_hash: str) -> None:
        self._maybe_fail()
        self._mutate(user_id, password_hash=password_hash)

    async def update_balance(self, user_id: str, delta: Decimal) -> None:
        self._maybe_fail()
        user = self._require(user_id)
        self._mutate(user_id, balance=user.balance + delta)

    async def create_purchase(self, user_id: str, amount: Decimal) -> None:
        self._maybe_fail()
        user = self._require(user_id)
        self._mutate(user_id, balance=user.balance - amount)
        self.purchases.append((user_id, amount))

    def _require(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise RecordNotFoundError(user_id)
        return user

    def _mutate(self, user_id: str, **changes: object) -> None:
        user = self._require(user_id)
        self.users[user_id] = replace(user, updated_at=utcnow(), **changes)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with


class InMemorySessionStore(SessionStore):
    """Dict-backed session store; ``dict.pop`` gives atomic consume on one loop."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.entries: dict[str, tuple[str, datetime]] = {}
        self.fail_puts = False
        self._clock = clock

    async def put(self, token: str, user_id: str, ttl: timedelta) -> None:
        if self.fail_puts:
            raise SessionStoreError("store unavailable")
        self.entries[token] = (user_id, self._clock() + ttl)

    async def delete_if_present(self, token: str) -> str | None:
        entry = self.entries.pop(token, None)
        if entry is None:
            return None
        user_id, expires_at = entry
        if expires_at <= self._clock():
            return None
        return user_id

    async def exists(self, token: str) -> bool:
        entry = self.entries.get(token)
        return entry is not None and entry[1] > self._clock()


__all__ = [
    "InMemorySessionStore",
    "InMemoryUserRepository",
    "TEST_SECRET",
    "fast_hasher",
    "utcnow",
]
