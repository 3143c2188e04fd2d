from __future__ import annotations

from contextlib import asynccontextmanager

import asyncpg
import uvicorn
from fastapi import FastAPI
from redis.asyncio import Redis
from redis.exceptions import RedisError

from common.logging import configure_structured_logging
from common.retry import retry_async
from identity.app import create_identity_app
from identity.configuration import IdentitySettings, load_settings
from identity.infrastructure.sessions import RedisSessionStore
from identity.infrastructure.users import PostgresUserRepository, prepare_schema
from identity.security import Argon2PasswordHasher
from identity.services.account_service import AccountService
from identity.services.auth_service import AuthService
from identity.tokens import TokenIssuer


_POSTGRES_STARTUP_ERRORS = (asyncpg.PostgresConnectionError, asyncpg.CannotConnectNowError, OSError)
_REDIS_STARTUP_ERRORS = (RedisError, OSError)


class _PoolProxy:
    """Deferred asyncpg pool so repositories can be built before startup."""

    def __init__(self) -> None:
        self._pool: asyncpg.Pool | None = None

    @property
    def pool(self) -> asyncpg.Pool | None:
        return self._pool

    def set_pool(self, pool: asyncpg.Pool | None) -> None:
        self._pool = pool

    def acquire(self):
        if self._pool is None:
            raise RuntimeError("Database pool not initialised")
        return self._pool.acquire()


def create_default_app(settings: IdentitySettings | None = None) -> FastAPI:
    """Build the production application from environment settings.

    Settings are validated eagerly; a missing signing secret raises here,
    before any connection is attempted.
    """
    resolved = settings or load_settings()
    logger = configure_structured_logging("identity", level=resolved.log_level)

    pool_proxy = _PoolProxy()
    redis_client = Redis.from_url(resolved.redis_url)

    user_repository = PostgresUserRepository(pool=pool_proxy, schema=resolved.postgres_schema)
    session_store = RedisSessionStore(redis_client)
    token_issuer = TokenIssuer(
        secret=resolved.jwt_secret.get_secret_value(),
        session_store=session_store,
        access_token_ttl=resolved.access_token_ttl,
        refresh_token_ttl=resolved.refresh_token_ttl,
        algorithm=resolved.jwt_algorithm,
    )
    password_hasher = Argon2PasswordHasher()

    app = create_identity_app(
        auth_service=AuthService(
            user_repository=user_repository,
            session_store=session_store,
            token_issuer=token_issuer,
            password_hasher=password_hasher,
        ),
        account_service=AccountService(user_repository=user_repository, password_hasher=password_hasher),
        token_issuer=token_issuer,
        request_timeout_seconds=resolved.request_timeout_seconds,
        cors_origins=resolved.cors_origins,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        pool = await retry_async(
            asyncpg.create_pool,
            dsn=resolved.postgres_dsn,
            description="postgres pool",
            retry_on=_POSTGRES_STARTUP_ERRORS,
        )
        pool_proxy.set_pool(pool)
        await prepare_schema(pool, resolved.postgres_schema)
        await retry_async(redis_client.ping, description="redis ping", retry_on=_REDIS_STARTUP_ERRORS)
        logger.info(
            "Identity service started",
            extra={
                "event": "identity.app.startup",
                "context": {
                    "schema": resolved.postgres_schema,
                    "access_token_ttl_minutes": resolved.access_token_ttl_minutes,
                    "refresh_token_ttl_minutes": resolved.refresh_token_ttl_minutes,
                },
            },
        )
        try:
            yield
        finally:
            if pool_proxy.pool is not None:
                await pool_proxy.pool.close()
                pool_proxy.set_pool(None)
            await redis_client.aclose()
            logger.info("Identity service shut down", extra={"event": "identity.app.shutdown"})

    app.router.lifespan_context = lifespan
    return app


def main() -> None:
    settings = load_settings()
    uvicorn.run(create_default_app(settings), host="0.0.0.0", port=settings.http_port)


__all__ = ["create_default_app", "main"]


if __name__ == "__main__":
    main()
