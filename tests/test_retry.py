from __future__ import annotations

import asyncio

import asyncpg
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from common.retry import retry_async
from identity.server import _POSTGRES_STARTUP_ERRORS, _REDIS_STARTUP_ERRORS

pytestmark = pytest.mark.unit


class Flaky:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self, value: str) -> str:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("not ready")
        return value


def test_retry_recovers_after_transient_failures() -> None:
    delays: list[float] = []

    async def record_sleep(delay: float) -> None:
        delays.append(delay)

    flaky = Flaky(failures=2)
    result = asyncio.run(retry_async(flaky, "ready", attempts=5, base_delay=0.1, sleep=record_sleep))

    assert result == "ready"
    assert flaky.calls == 3
    assert delays == pytest.approx([0.1, 0.2])


def test_retry_gives_up_after_last_attempt() -> None:
    async def no_sleep(_: float) -> None:
        return None

    flaky = Flaky(failures=10)
    with pytest.raises(ConnectionRefusedError):
        asyncio.run(retry_async(flaky, "ready", attempts=3, sleep=no_sleep))
    assert flaky.calls == 3


def test_non_transient_errors_propagate_immediately() -> None:
    calls = 0

    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad dsn")

    with pytest.raises(ValueError):
        asyncio.run(retry_async(broken, attempts=3))
    assert calls == 1


def test_attempts_must_be_positive() -> None:
    async def noop() -> None:
        return None

    with pytest.raises(ValueError):
        asyncio.run(retry_async(noop, attempts=0))


def test_redis_connection_errors_are_retried_at_startup() -> None:
    calls = 0

    async def ping() -> bool:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise RedisConnectionError("Error 111 connecting to localhost:6379")
        return True

    async def no_sleep(_: float) -> None:
        return None

    result = asyncio.run(
        retry_async(ping, attempts=5, description="redis ping", sleep=no_sleep, retry_on=_REDIS_STARTUP_ERRORS)
    )

    assert result is True
    assert calls == 3


def test_postgres_starting_up_is_retried() -> None:
    calls = 0

    async def create_pool() -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise asyncpg.CannotConnectNowError("the database system is starting up")
        return "pool"

    async def no_sleep(_: float) -> None:
        return None

    result = asyncio.run(
        retry_async(create_pool, attempts=3, sleep=no_sleep, retry_on=_POSTGRES_STARTUP_ERRORS)
    )

    assert result == "pool"
    assert calls == 2
