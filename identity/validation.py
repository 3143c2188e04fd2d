from __future__ import annotations

import re

from identity.constants import MIN_PASSWORD_LENGTH, MIN_USERNAME_LENGTH
from identity.domain.exceptions import InvalidArgumentError, InvalidCredentialsError
from identity.domain.models import LoginInputKind

_EMAIL_PATTERN = re.compile(r"[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}")


def is_valid_email(value: str) -> bool:
    return _EMAIL_PATTERN.fullmatch(value) is not None


def require_fields(op: str, **fields: object) -> None:
    """Raise ``InvalidArgumentError`` naming the first empty field."""
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value):
            raise InvalidArgumentError(f"{name} is empty", op=op)


def check_register(username: str, email: str, password: str, *, op: str) -> None:
    if len(username) < MIN_USERNAME_LENGTH:
        raise InvalidCredentialsError("username too short", op=op)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidCredentialsError("password too short", op=op)
    if not is_valid_email(email):
        raise InvalidCredentialsError("malformed email", op=op)


def check_login(login_input: str, password: str, *, op: str) -> None:
    # The input may be a username or an email, so only lengths are checked.
    if len(login_input) < MIN_USERNAME_LENGTH or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidCredentialsError(op=op)


def classify_login_input(login_input: str) -> LoginInputKind:
    if is_valid_email(login_input):
        return LoginInputKind.EMAIL
    return LoginInputKind.USERNAME


__all__ = [
    "check_login",
    "check_register",
    "classify_login_input",
    "is_valid_email",
    "require_fields",
]
