from __future__ import annotations

from typing import Final

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

# Argon2id cost parameters (RFC 9106 "second recommended option").
TIME_COST: Final[int] = 3
MEMORY_COST_KIB: Final[int] = 64 * 1024
PARALLELISM: Final[int] = 4


class Argon2PasswordHasher:
    """Argon2id password hasher with fixed cost parameters.

    Every call to :meth:`hash` draws a fresh salt, so two hashes of the same
    password differ while both verify. :meth:`verify` relies on argon2's
    constant-time comparison and reports any failure, including a corrupt or
    foreign hash string, as a plain mismatch.
    """

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        self._hasher = hasher or PasswordHasher(
            time_cost=TIME_COST,
            memory_cost=MEMORY_COST_KIB,
            parallelism=PARALLELISM,
        )

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, hashed_password: str, candidate: str) -> bool:
        try:
            return self._hasher.verify(hashed_password, candidate)
        except (VerificationError, InvalidHashError):
            return False


__all__ = ["Argon2PasswordHasher", "MEMORY_COST_KIB", "PARALLELISM", "TIME_COST"]
