from __future__ import annotations

from typing import Final

BEARER_PREFIX: Final[str] = "Bearer "
TOKEN_TYPE: Final[str] = "bearer"

REFRESH_SESSION_PREFIX: Final[str] = "identity:refresh:"

DEFAULT_ACCESS_TOKEN_TTL_MINUTES: Final[int] = 15
DEFAULT_REFRESH_TOKEN_TTL_MINUTES: Final[int] = 30 * 24 * 60

HMAC_ALGORITHMS: Final[frozenset[str]] = frozenset({"HS256", "HS384", "HS512"})

MIN_USERNAME_LENGTH: Final[int] = 3
MIN_PASSWORD_LENGTH: Final[int] = 8
