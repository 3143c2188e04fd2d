from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import jwt

from common.logging import get_logger
from identity.constants import HMAC_ALGORITHMS
from identity.domain.exceptions import (
    InternalError,
    InvalidAccessTokenError,
    NoActiveSessionError,
    SessionStoreError,
    StorageError,
)
from identity.domain.models import SessionIdentity, TokenClaims, TokenPair
from identity.ports.repositories import SessionStore

logger = get_logger("identity.tokens")

_REFRESH_TOKEN_BYTES = 32

IdentityLookup = Callable[[str], Awaitable[SessionIdentity | None]]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class TokenIssuer:
    """Issues signed access tokens and rotates opaque refresh tokens.

    Access tokens are HMAC-signed JWTs carrying ``id``, ``email`` and ``exp``.
    Refresh tokens are random strings whose only meaning is the user id bound
    to them in the session store; consuming one removes that binding, so each
    refresh token authenticates at most once.

    The signing secret is fixed for the lifetime of the issuer. An empty secret
    is rejected at construction so a misconfigured process fails before it
    serves traffic.
    """

    def __init__(
        self,
        *,
        secret: str,
        session_store: SessionStore,
        access_token_ttl: timedelta,
        refresh_token_ttl: timedelta,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret or not secret.strip():
            raise ValueError("token signing secret is not configured")
        if algorithm not in HMAC_ALGORITHMS:
            raise ValueError(f"unsupported signing algorithm: {algorithm}")
        if access_token_ttl <= timedelta(0) or refresh_token_ttl <= timedelta(0):
            raise ValueError("token lifetimes must be positive")
        self._secret = secret
        self._session_store = session_store
        self._access_token_ttl = access_token_ttl
        self._refresh_token_ttl = refresh_token_ttl
        self._algorithm = algorithm
        self._clock = clock

    def issue_access_token(self, user_id: str, email: str, ttl: timedelta | None = None) -> str:
        lifetime = ttl if ttl is not None else self._access_token_ttl
        if lifetime <= timedelta(0):
            raise ValueError("access token lifetime must be positive")
        expires_at = self._clock() + lifetime
        claims = {"id": user_id, "email": email, "exp": int(expires_at.timestamp())}
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify_access_token(self, token: str) -> TokenClaims:
        op = "tokens.verify_access_token"
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise InvalidAccessTokenError("malformed token", op=op) from None

        if header.get("alg") not in HMAC_ALGORITHMS:
            raise InvalidAccessTokenError("unexpected signing method", op=op)

        try:
            # Expiry is checked against the issuer clock below.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "id", "email"], "verify_exp": False},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidAccessTokenError(str(exc) or "invalid signature", op=op) from None

        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError):
            raise InvalidAccessTokenError("malformed expiry", op=op) from None
        if expires_at <= self._clock():
            raise InvalidAccessTokenError("token expired", op=op)

        user_id = payload["id"]
        email = payload["email"]
        if not isinstance(user_id, str) or not isinstance(email, str):
            raise InvalidAccessTokenError("malformed claims", op=op)
        return TokenClaims(user_id=user_id, email=email, expires_at=expires_at)

    def issue_refresh_token(self) -> str:
        return secrets.token_urlsafe(_REFRESH_TOKEN_BYTES)

    async def open_session(self, identity: SessionIdentity) -> TokenPair:
        """Bind a fresh refresh token to ``identity`` and pair it with an access token."""
        refresh_token = self.issue_refresh_token()
        await self._session_store.put(refresh_token, identity.user_id, self._refresh_token_ttl)
        access_token = self.issue_access_token(identity.user_id, identity.email)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def rotate_refresh_token(self, old_token: str, lookup: IdentityLookup) -> TokenPair:
        """Exchange ``old_token`` for a new token pair.

        The old binding is removed with a single atomic delete before anything
        is issued. ``lookup`` resolves the bound user id to the user's current
        identity, so a changed email shows up in the new access token; a user
        that no longer exists ends the session. If loading the user or storing
        the replacement fails afterwards the caller gets ``InternalError`` and
        must log in again or retry; it must not assume the rotation happened.
        """
        op = "tokens.rotate_refresh_token"
        try:
            user_id = await self._session_store.delete_if_present(old_token)
        except SessionStoreError as exc:
            logger.error(
                "Session store failed while consuming refresh token",
                exc_info=True,
                extra={"event": "identity.session.rotate_failed", "op": op},
            )
            raise InternalError(op=op) from exc

        if user_id is None:
            logger.info(
                "Refresh token not active",
                extra={"event": "identity.session.rotate_rejected", "op": op},
            )
            raise NoActiveSessionError(op=op)

        try:
            identity = await lookup(user_id)
        except StorageError as exc:
            logger.error(
                "Refresh token consumed but user could not be loaded",
                exc_info=True,
                extra={
                    "event": "identity.session.rotate_ambiguous",
                    "op": op,
                    "context": {"user_id": user_id},
                },
            )
            raise InternalError("refresh token rotation incomplete", op=op) from exc
        if identity is None:
            logger.info(
                "Refresh token bound to a missing user",
                extra={"event": "identity.session.rotate_rejected", "op": op, "context": {"user_id": user_id}},
            )
            raise NoActiveSessionError(op=op)

        try:
            pair = await self.open_session(identity)
        except SessionStoreError as exc:
            logger.error(
                "Old refresh token consumed but replacement could not be stored",
                exc_info=True,
                extra={
                    "event": "identity.session.rotate_ambiguous",
                    "op": op,
                    "context": {"user_id": identity.user_id},
                },
            )
            raise InternalError("refresh token rotation incomplete", op=op) from exc

        logger.info(
            "Refresh token rotated",
            extra={
                "event": "identity.session.rotated",
                "op": op,
                "context": {"user_id": identity.user_id},
            },
        )
        return pair


__all__ = ["IdentityLookup", "TokenIssuer"]
