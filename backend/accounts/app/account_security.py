"""Lockout counters and account status transitions.

Locks are released lazily: an account whose ``locked_until`` lies in the
past is simply treated as unlocked at the next attempt, there is no unlock
job. The failure counter is a plain read-modify-write on the loaded row, so
two concurrent failed logins may both persist the same incremented value.
That undercount is accepted; it can only delay a lock by one attempt.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from ..db.models import AccountStatus, User
from .config import AuthSettings, settings
from .errors import AccountDeactivated, AccountLocked, AuthError, InvalidStatusTransition
from .timeutils import ensure_aware, utcnow

_ALLOWED_TRANSITIONS: Final[dict[AccountStatus, frozenset[AccountStatus]]] = {
    AccountStatus.PENDING: frozenset({AccountStatus.ACTIVE, AccountStatus.SUSPENDED}),
    AccountStatus.ACTIVE: frozenset({AccountStatus.SUSPENDED}),
    AccountStatus.SUSPENDED: frozenset({AccountStatus.ACTIVE}),
}


@dataclass(frozen=True, slots=True)
class FailedAttemptOutcome:
    attempts: int
    locked: bool
    locked_until: datetime | None


class AccountSecurity:
    """Apply the lockout policy and status machine to loaded user rows."""

    def __init__(
        self,
        config: AuthSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or settings.auth
        self._clock = clock
        if self._config.lockout_threshold <= 0:
            raise ValueError("lockout_threshold must be positive")
        if self._config.lockout_duration_seconds <= 0:
            raise ValueError("lockout_duration_seconds must be positive")

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(seconds=self._config.lockout_duration_seconds)

    def is_locked(self, user: User) -> bool:
        locked_until = ensure_aware(user.locked_until)
        return locked_until is not None and locked_until > self._clock()

    def register_failed_attempt(self, user: User) -> FailedAttemptOutcome:
        """Bump the failure counter and engage the lock at the threshold.

        A lock that has already run out is released first, so the counter
        starts again from zero.
        """

        if user.locked_until is not None and not self.is_locked(user):
            self.reset_failed_attempts(user)
        attempts = (user.failed_login_attempts or 0) + 1
        user.failed_login_attempts = attempts
        if attempts >= self._config.lockout_threshold:
            user.locked_until = self._clock() + self.lockout_duration
            return FailedAttemptOutcome(attempts, True, user.locked_until)
        return FailedAttemptOutcome(attempts, False, None)

    def reset_failed_attempts(self, user: User) -> None:
        user.failed_login_attempts = 0
        user.locked_until = None

    def check_login_preconditions(self, user: User) -> AuthError | None:
        """Return the error that blocks a password check, if any."""

        if not user.is_active:
            return AccountDeactivated()
        if self.is_locked(user):
            return AccountLocked(ensure_aware(user.locked_until))
        return None

    @staticmethod
    def can_sign_in(user: User) -> bool:
        return bool(user.is_email_verified) and user.account_status is AccountStatus.ACTIVE

    @staticmethod
    def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS.get(current, frozenset())

    def transition_status(self, user: User, target: AccountStatus) -> AccountStatus:
        """Move ``user`` to ``target`` and return the previous status."""

        current = user.account_status
        if current is target:
            return current
        if not self.can_transition(current, target):
            raise InvalidStatusTransition(
                f"Cannot change account status from {current.value} to {target.value}"
            )
        user.account_status = target
        return current

    def mark_email_verified(self, user: User) -> None:
        user.is_email_verified = True
        if user.account_status is AccountStatus.PENDING:
            user.account_status = AccountStatus.ACTIVE


__all__ = ["AccountSecurity", "FailedAttemptOutcome"]
