"""Tests for lockout counters and account status transitions."""
from __future__ import annotations

from datetime import timedelta

import pytest

from backend.accounts.app.account_security import AccountSecurity
from backend.accounts.app.config import AuthSettings
from backend.accounts.app.errors import AccountDeactivated, AccountLocked, InvalidStatusTransition
from backend.accounts.app.repositories import UserRepository
from backend.accounts.db.base import create_session
from backend.accounts.db.models import AccountStatus, User

from .utils import create_user


def _user(**overrides) -> User:
    values = dict(
        email="riley.owens@acme-corp.io",
        full_name="Riley Owens",
        password_hash="x",
        is_active=True,
        account_status=AccountStatus.ACTIVE,
        is_email_verified=True,
        failed_login_attempts=0,
    )
    values.update(overrides)
    return User(**values)


def test_lock_engages_on_fifth_failure(clock) -> None:
    security = AccountSecurity(AuthSettings(), clock=clock)
    user = _user()

    outcomes = [security.register_failed_attempt(user) for _ in range(5)]

    assert [outcome.locked for outcome in outcomes] == [False, False, False, False, True]
    assert user.failed_login_attempts == 5
    assert (user.locked_until - clock.now).total_seconds() == 1_800
    assert security.is_locked(user) is True


def test_lock_is_released_lazily(clock) -> None:
    security = AccountSecurity(AuthSettings(), clock=clock)
    user = _user()
    for _ in range(5):
        security.register_failed_attempt(user)

    clock.advance(minutes=30, seconds=1)

    assert security.is_locked(user) is False
    assert security.check_login_preconditions(user) is None
    outcome = security.register_failed_attempt(user)
    assert outcome.attempts == 1
    assert outcome.locked is False


def test_preconditions_report_blocking_error(clock) -> None:
    security = AccountSecurity(AuthSettings(), clock=clock)

    assert isinstance(security.check_login_preconditions(_user(is_active=False)), AccountDeactivated)
    locked = security.check_login_preconditions(_user(locked_until=clock.now + timedelta(minutes=5)))
    assert isinstance(locked, AccountLocked)
    assert locked.locked_until == clock.now + timedelta(minutes=5)


def test_reset_clears_counter(clock) -> None:
    security = AccountSecurity(AuthSettings(), clock=clock)
    user = _user(failed_login_attempts=3)

    security.reset_failed_attempts(user)

    assert user.failed_login_attempts == 0
    assert user.locked_until is None


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (AccountStatus.PENDING, AccountStatus.ACTIVE),
        (AccountStatus.PENDING, AccountStatus.SUSPENDED),
        (AccountStatus.ACTIVE, AccountStatus.SUSPENDED),
        (AccountStatus.SUSPENDED, AccountStatus.ACTIVE),
    ],
)
def test_allowed_transitions(current: AccountStatus, target: AccountStatus) -> None:
    security = AccountSecurity(AuthSettings())
    user = _user(account_status=current)

    assert security.transition_status(user, target) is current
    assert user.account_status is target


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (AccountStatus.ACTIVE, AccountStatus.PENDING),
        (AccountStatus.SUSPENDED, AccountStatus.PENDING),
    ],
)
def test_rejected_transitions(current: AccountStatus, target: AccountStatus) -> None:
    security = AccountSecurity(AuthSettings())
    user = _user(account_status=current)

    with pytest.raises(InvalidStatusTransition):
        security.transition_status(user, target)
    assert user.account_status is current


def test_email_verification_activates_pending_account() -> None:
    security = AccountSecurity(AuthSettings())
    user = _user(account_status=AccountStatus.PENDING, is_email_verified=False)

    assert security.can_sign_in(user) is False
    security.mark_email_verified(user)

    assert user.is_email_verified is True
    assert user.account_status is AccountStatus.ACTIVE
    assert security.can_sign_in(user) is True


def test_suspended_account_stays_suspended_after_verification() -> None:
    security = AccountSecurity(AuthSettings())
    user = _user(account_status=AccountStatus.SUSPENDED, is_email_verified=False)

    security.mark_email_verified(user)

    assert user.account_status is AccountStatus.SUSPENDED
    assert security.can_sign_in(user) is False


@pytest.mark.asyncio
async def test_concurrent_failures_may_undercount(db_session) -> None:
    """Two racing failures that read the same row both persist the same count."""

    created = await create_user(db_session)
    security = AccountSecurity(AuthSettings())

    first_session = create_session()
    second_session = create_session()
    try:
        first = await UserRepository(first_session).find_by_id(created.id)
        second = await UserRepository(second_session).find_by_id(created.id)

        security.register_failed_attempt(first)
        security.register_failed_attempt(second)
        await UserRepository(first_session).save(first)
        await UserRepository(second_session).save(second)
    finally:
        await first_session.close()
        await second_session.close()

    verify_session = create_session()
    try:
        stored = await UserRepository(verify_session).find_by_id(created.id)
        assert stored.failed_login_attempts == 1
    finally:
        await verify_session.close()
