from __future__ import annotations

from typing import ClassVar


class IdentityError(Exception):
    """Base exception for errors surfaced by the identity services.

    ``op`` names the service operation that classified the failure, e.g.
    ``"auth.register"``.
    """

    kind: ClassVar[str] = "Internal"
    default_message: ClassVar[str] = "internal error"

    def __init__(self, message: str | None = None, *, op: str | None = None) -> None:
        self.message = message or self.default_message
        self.op = op
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.op:
            return f"{self.op}: {self.message}"
        return self.message


class InvalidArgumentError(IdentityError):
    """Raised when a required field is empty or malformed."""

    kind = "InvalidArgument"
    default_message = "invalid argument"


class InvalidCredentialsError(IdentityError):
    """Raised on password mismatch or credentials failing shape checks."""

    kind = "InvalidCredentials"
    default_message = "invalid credentials"


class WrongPasswordError(InvalidCredentialsError):
    """Raised when the current password supplied with a mutation is wrong."""

    default_message = "wrong password"


class UserAlreadyExistsError(IdentityError):
    kind = "AlreadyExists"
    default_message = "user already exists"


class EmailAlreadyTakenError(IdentityError):
    kind = "EmailAlreadyTaken"
    default_message = "email already taken"


class UserNotFoundError(IdentityError):
    kind = "NotFound"
    default_message = "user not found"


class NoActiveSessionError(IdentityError):
    kind = "NoActiveSession"
    default_message = "no active session"


class WrongEmailError(IdentityError):
    kind = "WrongEmail"
    default_message = "wrong email"


class ForbiddenError(IdentityError):
    """Raised when the authenticated identity does not own the target record."""

    kind = "Forbidden"
    default_message = "operation not permitted for this identity"


class InvalidAccessTokenError(IdentityError):
    kind = "InvalidAccessToken"
    default_message = "invalid access token"


class InternalError(IdentityError):
    kind = "Internal"
    default_message = "internal error"


class StorageError(Exception):
    """Base exception raised by user repository implementations."""


class UniqueViolationError(StorageError):
    """Raised when a write collides with a unique username or email."""

    def __init__(self, field: str) -> None:
        super().__init__(f"unique constraint violated on {field}")
        self.field = field


class RecordNotFoundError(StorageError):
    """Raised when an update targets an identifier that no longer exists."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"no user with id={user_id}")
        self.user_id = user_id


class SessionStoreError(Exception):
    """Raised by session store implementations on backend failure."""


__all__ = [
    "EmailAlreadyTakenError",
    "ForbiddenError",
    "IdentityError",
    "InternalError",
    "InvalidAccessTokenError",
    "InvalidArgumentError",
    "InvalidCredentialsError",
    "NoActiveSessionError",
    "RecordNotFoundError",
    "SessionStoreError",
    "StorageError",
    "UniqueViolationError",
    "UserAlreadyExistsError",
    "UserNotFoundError",
    "WrongEmailError",
    "WrongPasswordError",
]
