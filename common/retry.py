from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from common.logging import get_logger

T = TypeVar("T")

DEFAULT_RETRY_ON: tuple[type[BaseException], ...] = (OSError, ConnectionError, asyncio.TimeoutError)

logger = get_logger("common.retry")


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    attempts: int = 5,
    base_delay: float = 0.5,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] | None = None,
    retry_on: tuple[type[BaseException], ...] = DEFAULT_RETRY_ON,
    **kwargs,
) -> T:
    """Await ``func`` until it succeeds, backing off linearly between attempts.

    Only exceptions listed in ``retry_on`` trigger another attempt; client
    libraries with their own error hierarchies (redis, asyncpg) pass theirs in.
    Only used while bringing up infrastructure connections; request handling
    never retries.
    """
    if attempts <= 0:
        raise ValueError("attempts must be positive")

    sleeper = sleep or asyncio.sleep

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on as exc:
            if attempt == attempts:
                logger.error(
                    "Giving up on %s",
                    description,
                    extra={"event": "startup.retry.exhausted", "context": {"attempts": attempts}},
                )
                raise
            delay = base_delay * attempt
            logger.warning(
                "Retrying %s",
                description,
                extra={
                    "event": "startup.retry",
                    "context": {"attempt": attempt, "delay": delay, "error": str(exc)},
                },
            )
            await sleeper(delay)

    raise RuntimeError("unreachable")  # pragma: no cover


__all__ = ["DEFAULT_RETRY_ON", "retry_async"]
