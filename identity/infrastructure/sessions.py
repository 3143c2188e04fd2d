from __future__ import annotations

import json
import math
from datetime import timedelta
from typing import Final

from redis.asyncio import Redis
from redis.exceptions import RedisError

from identity.constants import REFRESH_SESSION_PREFIX
from identity.domain.exceptions import SessionStoreError
from identity.ports.repositories import SessionStore


class RedisSessionStore(SessionStore):
    """Redis-backed refresh-token bindings.

    ``delete_if_present`` uses ``GETDEL`` (Redis 6.2+), which reads and removes
    the key in one command, so concurrent callers holding the same token
    cannot both observe it.
    """

    _PREFIX: Final[str] = REFRESH_SESSION_PREFIX

    def __init__(self, redis: Redis, *, prefix: str | None = None) -> None:
        self._redis = redis
        self._prefix = prefix or self._PREFIX

    async def put(self, token: str, user_id: str, ttl: timedelta) -> None:
        seconds = max(1, math.ceil(ttl.total_seconds()))
        payload = json.dumps({"user_id": user_id})
        try:
            await self._redis.set(self._key(token), payload, ex=seconds)
        except RedisError as exc:
            raise SessionStoreError(f"failed to store session: {exc}") from exc

    async def delete_if_present(self, token: str) -> str | None:
        try:
            raw = await self._redis.getdel(self._key(token))
        except RedisError as exc:
            raise SessionStoreError(f"failed to consume session: {exc}") from exc
        if raw is None:
            return None
        return json.loads(raw)["user_id"]

    async def exists(self, token: str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(token)))
        except RedisError as exc:
            raise SessionStoreError(f"failed to look up session: {exc}") from exc

    def _key(self, token: str) -> str:
        return f"{self._prefix}{token}"


__all__ = ["RedisSessionStore"]
