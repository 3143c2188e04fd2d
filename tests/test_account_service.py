from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio

from identity.domain.exceptions import (
    EmailAlreadyTakenError,
    ForbiddenError,
    InternalError,
    InvalidArgumentError,
    StorageError,
    UserNotFoundError,
    WrongEmailError,
    WrongPasswordError,
)
from identity.services.account_service import AccountService
from identity.services.auth_service import AuthService
from tests.identity_stubs import InMemoryUserRepository

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def alice(auth_service: AuthService) -> str:
    return await auth_service.register("alice", "alice@x.com", "password1")


@pytest_asyncio.fixture
async def bob(auth_service: AuthService) -> str:
    return await auth_service.register("bob", "bob@x.com", "password2")


@pytest.mark.asyncio
async def test_owner_reads_own_profile(account_service: AccountService, alice: str) -> None:
    user = await account_service.get_user_by_id(alice, alice)
    assert user.id == alice
    assert user.email == "alice@x.com"
    assert user.balance == Decimal("0")


@pytest.mark.asyncio
async def test_every_operation_refuses_foreign_target(
    account_service: AccountService,
    user_repository: InMemoryUserRepository,
    alice: str,
    bob: str,
) -> None:
    with pytest.raises(ForbiddenError):
        await account_service.get_user_by_id(alice, bob)
    with pytest.raises(ForbiddenError):
        await account_service.update_email(alice, bob, "bob@x.com", "mallory@x.com")
    with pytest.raises(ForbiddenError):
        await account_service.update_password(alice, bob, "password2", "password3")
    with pytest.raises(ForbiddenError):
        await account_service.update_balance(alice, bob, Decimal("10"))
    with pytest.raises(ForbiddenError):
        await account_service.create_purchase(alice, bob, Decimal("10"))

    target = user_repository.users[bob]
    assert target.email == "bob@x.com"
    assert target.balance == Decimal("0")
    assert user_repository.purchases == []


@pytest.mark.asyncio
async def test_ownership_is_checked_before_arguments(account_service: AccountService, alice: str, bob: str) -> None:
    with pytest.raises(ForbiddenError):
        await account_service.update_email(alice, bob, "", "")
    with pytest.raises(ForbiddenError):
        await account_service.update_balance(alice, bob, Decimal("0"))


@pytest.mark.asyncio
async def test_missing_target_is_not_found(account_service: AccountService, alice: str) -> None:
    with pytest.raises(UserNotFoundError):
        await account_service.get_user_by_id(alice, "missing-id")


@pytest.mark.asyncio
async def test_update_email_then_second_account_cannot_take_old_one_back(
    account_service: AccountService,
    auth_service: AuthService,
    alice: str,
    bob: str,
) -> None:
    await account_service.update_email(alice, alice, "alice@x.com", "alice@y.com")
    assert (await account_service.get_user_by_id(alice, alice)).email == "alice@y.com"

    with pytest.raises(EmailAlreadyTakenError):
        await account_service.update_email(bob, bob, "bob@x.com", "alice@y.com")

    pair = await auth_service.login("alice@y.com", "password1")
    assert pair.access_token


@pytest.mark.asyncio
async def test_update_email_argument_checks(account_service: AccountService, alice: str) -> None:
    with pytest.raises(InvalidArgumentError):
        await account_service.update_email(alice, alice, "alice@x.com", "alice@x.com")
    with pytest.raises(InvalidArgumentError):
        await account_service.update_email(alice, alice, "alice@x.com", "not-an-email")
    with pytest.raises(InvalidArgumentError):
        await account_service.update_email(alice, alice, "", "alice@y.com")
    with pytest.raises(WrongEmailError):
        await account_service.update_email(alice, alice, "someone@x.com", "alice@y.com")


@pytest.mark.asyncio
async def test_update_password_requires_current_password(
    account_service: AccountService,
    auth_service: AuthService,
    alice: str,
) -> None:
    with pytest.raises(WrongPasswordError):
        await account_service.update_password(alice, alice, "wrong-password", "password9")

    await account_service.update_password(alice, alice, "password1", "password9")

    pair = await auth_service.login("alice", "password9")
    assert pair.refresh_token


@pytest.mark.asyncio
async def test_update_password_argument_checks(account_service: AccountService, alice: str) -> None:
    with pytest.raises(InvalidArgumentError):
        await account_service.update_password(alice, alice, "password1", "password1")
    with pytest.raises(InvalidArgumentError):
        await account_service.update_password(alice, alice, "password1", "short")


@pytest.mark.asyncio
async def test_balance_and_purchase_move_balance(
    account_service: AccountService,
    user_repository: InMemoryUserRepository,
    alice: str,
) -> None:
    await account_service.update_balance(alice, alice, Decimal("100.50"))
    await account_service.create_purchase(alice, alice, Decimal("20.25"))
    await account_service.update_balance(alice, alice, Decimal("-5"))

    user = await account_service.get_user_by_id(alice, alice)
    assert user.balance == Decimal("75.25")
    assert user_repository.purchases == [(alice, Decimal("20.25"))]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("NaN"), Decimal("Infinity")])
async def test_amount_must_be_finite_and_non_zero(account_service: AccountService, alice: str, amount: Decimal) -> None:
    with pytest.raises(InvalidArgumentError):
        await account_service.update_balance(alice, alice, amount)
    with pytest.raises(InvalidArgumentError):
        await account_service.create_purchase(alice, alice, amount)


@pytest.mark.asyncio
async def test_storage_failure_is_internal(
    account_service: AccountService,
    user_repository: InMemoryUserRepository,
    alice: str,
) -> None:
    user_repository.fail_with = StorageError("connection reset")
    with pytest.raises(InternalError):
        await account_service.get_user_by_id(alice, alice)
