from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Awaitable

from common.logging import get_logger
from identity.constants import MIN_PASSWORD_LENGTH
from identity.domain.exceptions import (
    EmailAlreadyTakenError,
    ForbiddenError,
    InternalError,
    InvalidArgumentError,
    RecordNotFoundError,
    StorageError,
    UniqueViolationError,
    UserNotFoundError,
    WrongEmailError,
    WrongPasswordError,
)
from identity.domain.models import User
from identity.ports.repositories import UserRepository
from identity.security import Argon2PasswordHasher
from identity.validation import is_valid_email, require_fields

logger = get_logger("identity.account_service")


class AccountService:
    """Profile reads and mutations gated on ownership of the target record.

    Every operation loads the target user first and compares its id with the
    authenticated identity before looking at the operation's own arguments, so
    a caller acting on someone else's record is always refused with
    ``ForbiddenError`` (or ``UserNotFoundError`` when the record is missing).
    """

    def __init__(
        self,
        *,
        user_repository: UserRepository,
        password_hasher: Argon2PasswordHasher | None = None,
    ) -> None:
        self._user_repository = user_repository
        self._password_hasher = password_hasher or Argon2PasswordHasher()

    async def get_user_by_id(self, authenticated_id: str, target_id: str) -> User:
        op = "account.get_user_by_id"
        user = await self._load_owned(op, authenticated_id, target_id)
        logger.info("User profile read", extra={"event": "identity.account.read", "op": op, "context": {"user_id": user.id}})
        return user

    async def update_email(
        self,
        authenticated_id: str,
        target_id: str,
        old_email: str,
        new_email: str,
    ) -> None:
        op = "account.update_email"
        user = await self._load_owned(op, authenticated_id, target_id)

        require_fields(op, old_email=old_email, new_email=new_email)
        if new_email == old_email:
            raise InvalidArgumentError("new email is equal to old email", op=op)
        if not is_valid_email(new_email):
            raise InvalidArgumentError("malformed email", op=op)
        if user.email != old_email:
            logger.info("Email change with wrong current email", extra={"event": "identity.account.wrong_email", "op": op})
            raise WrongEmailError(op=op)

        try:
            available = await self._user_repository.is_email_available(new_email)
        except StorageError as exc:
            logger.error("Email availability check failed", exc_info=True, extra={"event": "identity.account.failed", "op": op})
            raise InternalError(op=op) from exc
        if not available:
            raise EmailAlreadyTakenError(op=op)

        await self._apply(op, user.id, self._user_repository.update_email(user.id, new_email))
        logger.info("Email updated", extra={"event": "identity.account.email_updated", "op": op, "context": {"user_id": user.id}})

    async def update_password(
        self,
        authenticated_id: str,
        target_id: str,
        old_password: str,
        new_password: str,
    ) -> None:
        op = "account.update_password"
        user = await self._load_owned(op, authenticated_id, target_id)

        require_fields(op, old_password=old_password, new_password=new_password)
        if new_password == old_password:
            raise InvalidArgumentError("new password is equal to old password", op=op)
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise InvalidArgumentError("new password too short", op=op)

        verified = await asyncio.to_thread(self._password_hasher.verify, user.password_hash, old_password)
        if not verified:
            logger.info("Password change with wrong current password", extra={"event": "identity.account.wrong_password", "op": op})
            raise WrongPasswordError(op=op)

        password_hash = await asyncio.to_thread(self._password_hasher.hash, new_password)
        await self._apply(op, user.id, self._user_repository.update_password(user.id, password_hash))
        logger.info("Password updated", extra={"event": "identity.account.password_updated", "op": op, "context": {"user_id": user.id}})

    async def update_balance(self, authenticated_id: str, target_id: str, amount: Decimal) -> None:
        op = "account.update_balance"
        user = await self._load_owned(op, authenticated_id, target_id)
        self._check_amount(op, amount)

        await self._apply(op, user.id, self._user_repository.update_balance(user.id, amount))
        logger.info(
            "Balance updated",
            extra={"event": "identity.account.balance_updated", "op": op, "context": {"user_id": user.id, "amount": amount}},
        )

    async def create_purchase(self, authenticated_id: str, target_id: str, amount: Decimal) -> None:
        op = "account.create_purchase"
        user = await self._load_owned(op, authenticated_id, target_id)
        self._check_amount(op, amount)

        await self._apply(op, user.id, self._user_repository.create_purchase(user.id, amount))
        logger.info(
            "Purchase recorded",
            extra={"event": "identity.account.purchase_created", "op": op, "context": {"user_id": user.id, "amount": amount}},
        )

    async def _load_owned(self, op: str, authenticated_id: str, target_id: str) -> User:
        require_fields(op, user_id=target_id)
        try:
            user = await self._user_repository.get_user_by_id(target_id)
        except StorageError as exc:
            logger.error("Failed to load user", exc_info=True, extra={"event": "identity.account.failed", "op": op})
            raise InternalError(op=op) from exc
        if user is None:
            raise UserNotFoundError(op=op)
        if not authenticated_id or user.id != authenticated_id:
            logger.warning(
                "Ownership check failed",
                extra={
                    "event": "identity.account.forbidden",
                    "op": op,
                    "context": {"authenticated_id": authenticated_id, "target_id": target_id},
                },
            )
            raise ForbiddenError(op=op)
        return user

    async def _apply(self, op: str, user_id: str, mutation: Awaitable[None]) -> None:
        try:
            await mutation
        except UniqueViolationError as exc:
            raise EmailAlreadyTakenError(op=op) from exc
        except RecordNotFoundError as exc:
            raise UserNotFoundError(op=op) from exc
        except StorageError as exc:
            logger.error(
                "Failed to update user",
                exc_info=True,
                extra={"event": "identity.account.failed", "op": op, "context": {"user_id": user_id}},
            )
            raise InternalError(op=op) from exc

    @staticmethod
    def _check_amount(op: str, amount: Decimal) -> None:
        if not amount.is_finite() or amount == 0:
            raise InvalidArgumentError("amount must be a non-zero number", op=op)


__all__ = ["AccountService"]
