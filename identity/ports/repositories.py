from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol, runtime_checkable

from identity.domain.models import LoginInputKind, User


@runtime_checkable
class UserRepository(Protocol):
    """Persistence for user records.

    The availability checks are advisory. ``save_user`` and ``update_email``
    must enforce uniqueness themselves and raise ``UniqueViolationError`` on
    collision; updates raise ``RecordNotFoundError`` when the identifier is
    gone. Any other backend failure surfaces as ``StorageError``.
    """

    async def is_username_available(self, username: str) -> bool:
        ...

    async def is_email_available(self, email: str) -> bool:
        ...

    async def save_user(
        self,
        user_id: str,
        username: str,
        email: str,
        password_hash: str,
        created_at: datetime,
    ) -> str:
        ...

    async def get_user(self, kind: LoginInputKind, value: str) -> User | None:
        ...

    async def get_user_by_id(self, user_id: str) -> User | None:
        ...

    async def update_email(self, user_id: str, new_email: str) -> None:
        ...

    async def update_password(self, user_id: str, password_hash: str) -> None:
        ...

    async def update_balance(self, user_id: str, delta: Decimal) -> None:
        ...

    async def create_purchase(self, user_id: str, amount: Decimal) -> None:
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Token to user id bindings with expiry.

    Only the user id is bound; anything else about the user is read from the
    repository when the binding is used. ``delete_if_present`` must be atomic:
    when several callers present the same token concurrently, exactly one
    receives the user id and the rest receive ``None``.
    """

    async def put(self, token: str, user_id: str, ttl: timedelta) -> None:
        ...

    async def delete_if_present(self, token: str) -> str | None:
        ...

    async def exists(self, token: str) -> bool:
        ...


__all__ = ["SessionStore", "UserRepository"]
