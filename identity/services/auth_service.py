from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Callable

from common.logging import get_logger
from identity.domain.exceptions import (
    InternalError,
    InvalidCredentialsError,
    NoActiveSessionError,
    SessionStoreError,
    StorageError,
    UniqueViolationError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from identity.domain.models import SessionIdentity, TokenPair
from identity.ports.repositories import SessionStore, UserRepository
from identity.security import Argon2PasswordHasher
from identity.tokens import TokenIssuer
from identity.validation import check_login, check_register, classify_login_input, require_fields

logger = get_logger("identity.auth_service")


def _new_user_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AuthService:
    """Registration, login, logout and refresh-token rotation."""

    def __init__(
        self,
        *,
        user_repository: UserRepository,
        session_store: SessionStore,
        token_issuer: TokenIssuer,
        password_hasher: Argon2PasswordHasher | None = None,
        id_generator: Callable[[], str] = _new_user_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._user_repository = user_repository
        self._session_store = session_store
        self._token_issuer = token_issuer
        self._password_hasher = password_hasher or Argon2PasswordHasher()
        self._id_generator = id_generator
        self._clock = clock

    async def register(self, username: str, email: str, password: str) -> str:
        op = "auth.register"
        require_fields(op, username=username, email=email, password=password)
        check_register(username, email, password, op=op)

        try:
            username_free = await self._user_repository.is_username_available(username)
            email_free = await self._user_repository.is_email_available(email)
        except StorageError as exc:
            logger.error("Availability check failed", exc_info=True, extra={"event": "identity.register.failed", "op": op})
            raise InternalError(op=op) from exc
        if not username_free or not email_free:
            logger.info(
                "Registration rejected, identity taken",
                extra={
                    "event": "identity.register.duplicate",
                    "op": op,
                    "context": {"username_available": username_free, "email_available": email_free},
                },
            )
            raise UserAlreadyExistsError(op=op)

        password_hash = await asyncio.to_thread(self._password_hasher.hash, password)
        user_id = self._id_generator()

        try:
            saved_id = await self._user_repository.save_user(
                user_id,
                username,
                email,
                password_hash,
                self._clock(),
            )
        except UniqueViolationError as exc:
            # Lost a race with a concurrent registration after the pre-check.
            logger.warning(
                "Registration hit uniqueness constraint",
                extra={"event": "identity.register.duplicate", "op": op, "context": {"field": exc.field}},
            )
            raise UserAlreadyExistsError(op=op) from exc
        except StorageError as exc:
            logger.error("Failed to save user", exc_info=True, extra={"event": "identity.register.failed", "op": op})
            raise InternalError(op=op) from exc

        logger.info(
            "User registered",
            extra={"event": "identity.register.succeeded", "op": op, "context": {"user_id": saved_id}},
        )
        return saved_id

    async def login(self, login_input: str, password: str) -> TokenPair:
        op = "auth.login"
        require_fields(op, input=login_input, password=password)
        check_login(login_input, password, op=op)

        kind = classify_login_input(login_input)
        try:
            user = await self._user_repository.get_user(kind, login_input)
        except StorageError as exc:
            logger.error("Failed to load user", exc_info=True, extra={"event": "identity.login.failed", "op": op})
            raise InternalError(op=op) from exc
        if user is None:
            logger.info(
                "Login for unknown user",
                extra={"event": "identity.login.unknown_user", "op": op, "context": {"lookup": kind.value}},
            )
            raise UserNotFoundError(op=op)

        verified = await asyncio.to_thread(self._password_hasher.verify, user.password_hash, password)
        if not verified:
            logger.info(
                "Login rejected",
                extra={"event": "identity.login.rejected", "op": op, "context": {"user_id": user.id}},
            )
            raise InvalidCredentialsError(op=op)

        try:
            pair = await self._token_issuer.open_session(SessionIdentity(user_id=user.id, email=user.email))
        except SessionStoreError as exc:
            logger.error("Failed to open session", exc_info=True, extra={"event": "identity.login.failed", "op": op})
            raise InternalError(op=op) from exc

        logger.info("User logged in", extra={"event": "identity.login.succeeded", "op": op, "context": {"user_id": user.id}})
        return pair

    async def logout(self, token: str) -> bool:
        op = "auth.logout"
        require_fields(op, token=token)
        try:
            user_id = await self._session_store.delete_if_present(token)
        except SessionStoreError as exc:
            logger.error("Failed to end session", exc_info=True, extra={"event": "identity.logout.failed", "op": op})
            raise InternalError(op=op) from exc
        if user_id is None:
            raise NoActiveSessionError(op=op)

        logger.info(
            "User logged out",
            extra={"event": "identity.logout.succeeded", "op": op, "context": {"user_id": user_id}},
        )
        return True

    async def refresh_session(self, refresh_token: str) -> TokenPair:
        require_fields("auth.refresh_session", refresh_token=refresh_token)
        return await self._token_issuer.rotate_refresh_token(refresh_token, self._current_identity)

    async def session_active(self, token: str) -> bool:
        op = "auth.session_active"
        require_fields(op, token=token)
        try:
            return await self._session_store.exists(token)
        except SessionStoreError as exc:
            raise InternalError(op=op) from exc

    async def _current_identity(self, user_id: str) -> SessionIdentity | None:
        user = await self._user_repository.get_user_by_id(user_id)
        if user is None:
            return None
        return SessionIdentity(user_id=user.id, email=user.email)


__all__ = ["AuthService"]
