from __future__ import annotations

from datetime import timedelta

import pytest

from identity.security import Argon2PasswordHasher
from identity.services.account_service import AccountService
from identity.services.auth_service import AuthService
from identity.tokens import TokenIssuer
from tests.identity_stubs import TEST_SECRET, InMemorySessionStore, InMemoryUserRepository, fast_hasher


@pytest.fixture
def password_hasher() -> Argon2PasswordHasher:
    return fast_hasher()


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def token_issuer(session_store: InMemorySessionStore) -> TokenIssuer:
    return TokenIssuer(
        secret=TEST_SECRET,
        session_store=session_store,
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=30),
    )


@pytest.fixture
def auth_service(
    user_repository: InMemoryUserRepository,
    session_store: InMemorySessionStore,
    token_issuer: TokenIssuer,
    password_hasher: Argon2PasswordHasher,
) -> AuthService:
    return AuthService(
        user_repository=user_repository,
        session_store=session_store,
        token_issuer=token_issuer,
        password_hasher=password_hasher,
    )


@pytest.fixture
def account_service(
    user_repository: InMemoryUserRepository,
    password_hasher: Argon2PasswordHasher,
) -> AccountService:
    return AccountService(user_repository=user_repository, password_hasher=password_hasher)
