from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol

import asyncpg

from identity.domain.exceptions import RecordNotFoundError, StorageError, UniqueViolationError
from identity.domain.models import LoginInputKind, User
from identity.ports.repositories import UserRepository

_BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

_USER_COLUMNS = "id, username, email, password_hash, created_at, updated_at, balance, discount"


class SupportsAcquire(Protocol):
    def acquire(self) -> Any:
        ...


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _deserialize_user(record: Any) -> User:
    return User(
        id=str(record["id"]),
        username=record["username"],
        email=record["email"],
        password_hash=record["password_hash"],
        created_at=_aware(record["created_at"]),
        updated_at=_aware(record["updated_at"]),
        balance=Decimal(record["balance"]),
        discount=Decimal(record["discount"]),
    )


def _violated_field(exc: asyncpg.UniqueViolationError) -> str:
    constraint = getattr(exc, "constraint_name", None) or ""
    if "email" in constraint:
        return "email"
    if "username" in constraint:
        return "username"
    return constraint or "unknown"


def _parse_id(user_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(user_id)
    except ValueError:
        return None


@dataclass(slots=True)
class PostgresUserRepository(UserRepository):
    """asyncpg-backed user repository.

    Uniqueness of ``username`` and ``email`` is enforced by the table's unique
    constraints; the availability queries only exist to fail early.
    """

    pool: SupportsAcquire
    schema: str = "public"

    async def is_username_available(self, username: str) -> bool:
        query = f"SELECT 1 FROM {self.schema}.users WHERE username = $1"
        return await self._fetchval(query, username) is None

    async def is_email_available(self, email: str) -> bool:
        query = f"SELECT 1 FROM {self.schema}.users WHERE email = $1"
        return await self._fetchval(query, email) is None

    async def save_user(
        self,
        user_id: str,
        username: str,
        email: str,
        password_hash: str,
        created_at: datetime,
    ) -> str:
        query = f"""
        INSERT INTO {self.schema}.users (id, username, email, password_hash, created_at, updated_at)
        VALUES ($1, $2, $3, $4, $5, $5)
        RETURNING id
        """
        try:
            async with self.pool.acquire() as conn:  # type: ignore[attr-defined]
                saved = await conn.fetchval(query, uuid.UUID(user_id), username, email, password_hash, created_at)
        except asyncpg.UniqueViolationError as exc:
            raise UniqueViolationError(_violated_field(exc)) from exc
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"failed to save user: {exc}") from exc
        return str(saved)

    async def get_user(self, kind: LoginInputKind, value: str) -> User | None:
        column = "email" if kind is LoginInputKind.EMAIL else "username"
        query = f"SELECT {_USER_COLUMNS} FROM {self.schema}.users WHERE {column} = $1"
        record = await self._fetchrow(query, value)
        return None if record is None else _deserialize_user(record)

    async def get_user_by_id(self, user_id: str) -> User | None:
        parsed = _parse_id(user_id)
        if parsed is None:
            return None
        query = f"SELECT {_USER_COLUMNS} FROM {self.schema}.users WHERE id = $1"
        record = await self._fetchrow(query, parsed)
        return None if record is None else _deserialize_user(record)

    async def update_email(self, user_id: str, new_email: str) -> None:
        query = f"""
        UPDATE {self.schema}.users SET email = $2, updated_at = NOW()
        WHERE id = $1
        RETURNING id
        """
        await self._update(user_id, query, new_email)

    async def update_password(self, user_id: str, password_hash: str) -> None:
        query = f"""
        UPDATE {self.schema}.users SET password_hash = $2, updated_at = NOW()
        WHERE id = $1
        RETURNING id
        """
        await self._update(user_id, query, password_hash)

    async def update_balance(self, user_id: str, delta: Decimal) -> None:
        query = f"""
        UPDATE {self.schema}.users SET balance = balance + $2, updated_at = NOW()
        WHERE id = $1
        RETURNING id
        """
        await self._update(user_id, query, delta)

    async def create_purchase(self, user_id: str, amount: Decimal) -> None:
        parsed = _parse_id(user_id)
        if parsed is None:
            raise RecordNotFoundError(user_id)
        debit = f"""
        UPDATE {self.schema}.users SET balance = balance - $2, updated_at = NOW()
        WHERE id = $1
        RETURNING id
        """
        insert = f"""
        INSERT INTO {self.schema}.purchases (id, user_id, amount, created_at)
        VALUES ($1, $2, $3, NOW())
        """
        try:
            async with self.pool.acquire() as conn:  # type: ignore[attr-defined]
                async with conn.transaction():
                    updated = await conn.fetchval(debit, parsed, amount)
                    if updated is None:
                        raise RecordNotFoundError(user_id)
                    await conn.execute(insert, uuid.uuid4(), parsed, amount)
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"failed to record purchase: {exc}") from exc

    async def _update(self, user_id: str, query: str, value: Any) -> None:
        parsed = _parse_id(user_id)
        if parsed is None:
            raise RecordNotFoundError(user_id)
        try:
            async with self.pool.acquire() as conn:  # type: ignore[attr-defined]
                updated = await conn.fetchval(query, parsed, value)
        except asyncpg.UniqueViolationError as exc:
            raise UniqueViolationError(_violated_field(exc)) from exc
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"failed to update user: {exc}") from exc
        if updated is None:
            raise RecordNotFoundError(user_id)

    async def _fetchrow(self, query: str, *args: Any) -> Any:
        try:
            async with self.pool.acquire() as conn:  # type: ignore[attr-defined]
                return await conn.fetchrow(query, *args)
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"user query failed: {exc}") from exc

    async def _fetchval(self, query: str, *args: Any) -> Any:
        try:
            async with self.pool.acquire() as conn:  # type: ignore[attr-defined]
                return await conn.fetchval(query, *args)
        except _BACKEND_ERRORS as exc:
            raise StorageError(f"user query failed: {exc}") from exc


async def prepare_schema(pool: SupportsAcquire, schema: str) -> None:
    async with pool.acquire() as conn:  # type: ignore[attr-defined]
        await conn.execute(f'CREATE SCHEMA IF NOT EXISTS "{schema}"')
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {schema}.users (
                id UUID PRIMARY KEY,
                username TEXT NOT NULL,
                email TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                balance NUMERIC(18, 4) NOT NULL DEFAULT 0,
                discount NUMERIC(9, 4) NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CONSTRAINT users_username_key UNIQUE (username),
                CONSTRAINT users_email_key UNIQUE (email)
            )
            """
        )
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {schema}.purchases (
                id UUID PRIMARY KEY,
                user_id UUID NOT NULL REFERENCES {schema}.users (id) ON DELETE CASCADE,
                amount NUMERIC(18, 4) NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )


__all__ = ["PostgresUserRepository", "SupportsAcquire", "prepare_schema"]
