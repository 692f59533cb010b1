"""Password strength scoring, policy and reuse history."""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Final

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import PasswordHistory, User
from .config import PasswordSettings, settings
from .errors import StorageError
from .logging import get_logger
from .security import verify_password
from .timeutils import ensure_aware, utcnow

logger = get_logger("accounts.passwords")

COMMON_PASSWORDS: Final[tuple[str, ...]] = (
    "password", "123456", "123456789", "qwerty", "abc123", "password123",
    "admin", "letmein", "welcome", "monkey", "1234567890", "password1",
    "qwerty123", "dragon", "master", "hello", "freedom", "whatever",
    "qazwsx", "trustno1", "654321", "jordan23", "harley", "1234",
    "robert", "matthew", "jordan", "asshole", "daniel",
)

_UPPERCASE = re.compile(r"[A-Z]")
_LOWERCASE = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SPECIAL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?~`]")
_SEQUENTIAL = re.compile(
    r"(?:012|123|234|345|456|567|678|789|890|abc|bcd|cde|def|efg|fgh|ghi|hij|ijk|jkl"
    r"|klm|lmn|mno|nop|opq|pqr|qrs|rst|stu|tuv|uvw|vwx|wxy|xyz)",
    re.IGNORECASE,
)
_REPEATED = re.compile(r"(.)\1{3,}")

_MIN_STRONG_LENGTH: Final[int] = 12


@dataclass(frozen=True, slots=True)
class PasswordRequirements:
    length: bool
    uppercase: bool
    lowercase: bool
    numbers: bool
    special_chars: bool
    not_common: bool
    not_sequential: bool
    not_repeated: bool
    not_user_info: bool

    def as_dict(self) -> dict[str, bool]:
        return {
            "length": self.length,
            "uppercase": self.uppercase,
            "lowercase": self.lowercase,
            "numbers": self.numbers,
            "specialChars": self.special_chars,
            "notCommon": self.not_common,
            "notSequential": self.not_sequential,
            "notRepeated": self.not_repeated,
            "notUserInfo": self.not_user_info,
        }


@dataclass(frozen=True, slots=True)
class PasswordStrength:
    score: int
    level: str
    feedback: list[str] = field(default_factory=list)
    requirements: PasswordRequirements | None = None


def _check_requirements(password: str, user_info: Iterable[str]) -> PasswordRequirements:
    lowered = password.lower()
    return PasswordRequirements(
        length=len(password) >= _MIN_STRONG_LENGTH,
        uppercase=bool(_UPPERCASE.search(password)),
        lowercase=bool(_LOWERCASE.search(password)),
        numbers=bool(_DIGIT.search(password)),
        special_chars=bool(_SPECIAL.search(password)),
        not_common=not any(common in lowered for common in COMMON_PASSWORDS),
        not_sequential=not _SEQUENTIAL.search(password),
        not_repeated=not _REPEATED.search(password),
        not_user_info=not any(info and info.lower() in lowered for info in user_info),
    )


def _score(password: str, req: PasswordRequirements) -> int:
    length = len(password)
    score = 0
    if length >= 12:
        score += 25
    elif length >= 10:
        score += 20
    elif length >= 8:
        score += 15
    elif length >= 6:
        score += 10
    elif length >= 4:
        score += 5

    for present in (req.uppercase, req.lowercase, req.numbers, req.special_chars):
        if present:
            score += 10
    if req.not_common:
        score += 5
    if req.not_sequential:
        score += 5

    if length >= 16:
        score += 15
    elif length >= 14:
        score += 10
    elif length >= 12:
        score += 5

    if req.not_repeated:
        score += 10
    if req.not_user_info:
        score += 10
    return max(0, min(100, score))


def strength_level(score: int) -> str:
    if score >= 90:
        return "Very Strong"
    if score >= 75:
        return "Strong"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    if score >= 20:
        return "Weak"
    return "Very Weak"


def _feedback(req: PasswordRequirements, score: int) -> list[str]:
    feedback: list[str] = []
    if not req.length:
        feedback.append("Password must be at least 12 characters long")
    elif score < 30:
        feedback.append("Consider using a longer password (16+ characters)")
    if not req.uppercase:
        feedback.append("Add uppercase letters (A-Z)")
    if not req.lowercase:
        feedback.append("Add lowercase letters (a-z)")
    if not req.numbers:
        feedback.append("Add numbers (0-9)")
    if not req.special_chars:
        feedback.append("Add special characters (!@#$%^&*)")
    if not req.not_common:
        feedback.append("Avoid common passwords and dictionary words")
    if not req.not_sequential:
        feedback.append("Avoid sequential characters (123, abc)")
    if not req.not_repeated:
        feedback.append("Avoid repeated characters (aaaa, 1111)")
    if not req.not_user_info:
        feedback.append("Avoid using your personal information")
    if score >= 75:
        feedback.append("Great! This is a strong password")
    elif score >= 60:
        feedback.append("Good password, but could be stronger")
    return feedback


def calculate_strength(password: str, user_info: Sequence[str] = ()) -> PasswordStrength:
    """Score ``password`` on a 0-100 scale with human readable feedback."""

    requirements = _check_requirements(password, user_info)
    score = _score(password, requirements)
    return PasswordStrength(
        score=score,
        level=strength_level(score),
        feedback=_feedback(requirements, score),
        requirements=requirements,
    )


_REQUIREMENT_ERRORS: Final[tuple[tuple[str, str], ...]] = (
    ("uppercase", "Password must contain at least one uppercase letter"),
    ("lowercase", "Password must contain at least one lowercase letter"),
    ("numbers", "Password must contain at least one number"),
    ("special_chars", "Password must contain at least one special character"),
    ("not_common", "Password cannot contain common passwords or dictionary words"),
    ("not_sequential", "Password cannot contain sequential characters"),
    ("not_repeated", "Password cannot contain more than 3 repeated characters in a row"),
    ("not_user_info", "Password cannot contain your personal information"),
)


def _enforced_requirements(policy: PasswordSettings) -> dict[str, bool]:
    return {
        "uppercase": policy.require_uppercase,
        "lowercase": policy.require_lowercase,
        "numbers": policy.require_numbers,
        "special_chars": policy.require_special_chars,
    }


def validate_password(
    password: str,
    user_info: Sequence[str] = (),
    *,
    policy: PasswordSettings | None = None,
    min_score: int | None = None,
) -> tuple[bool, list[str]]:
    """Return ``(is_valid, errors)`` against the configured password policy.

    Length bounds and the character classes come from ``policy``; a class the
    policy does not require still counts towards the score but is never
    reported as an error. ``min_score`` overrides ``policy.min_score``.
    """

    policy = policy or settings.password
    threshold = policy.min_score if min_score is None else min_score
    result = calculate_strength(password, user_info)
    errors: list[str] = []
    if result.score < threshold:
        errors.append("Password does not meet minimum security requirements")
    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters long")
    if len(password) > policy.max_length:
        errors.append(f"Password must be at most {policy.max_length} characters long")
    requirements = result.requirements
    enforced = _enforced_requirements(policy)
    for attribute, message in _REQUIREMENT_ERRORS:
        if not enforced.get(attribute, True):
            continue
        if not getattr(requirements, attribute):
            errors.append(message)
    return not errors, errors


def user_info_tokens(*, email: str | None = None, full_name: str | None = None) -> list[str]:
    """Personal strings a password must not contain."""

    tokens: list[str] = []
    if full_name:
        tokens.extend(part for part in re.split(r"\s+", full_name.strip()) if len(part) >= 3)
    if email and "@" in email:
        local = email.split("@", 1)[0]
        if len(local) >= 3:
            tokens.append(local)
    return tokens


class PasswordPolicy:
    """Expose the configured policy and expiry calculations."""

    def __init__(
        self,
        config: PasswordSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or settings.password
        self._clock = clock

    @property
    def config(self) -> PasswordSettings:
        return self._config

    def requirements(self) -> dict[str, object]:
        return {
            "minLength": self._config.min_length,
            "maxLength": self._config.max_length,
            "requireUppercase": self._config.require_uppercase,
            "requireLowercase": self._config.require_lowercase,
            "requireNumbers": self._config.require_numbers,
            "requireSpecialChars": self._config.require_special_chars,
            "preventCommonPasswords": True,
            "preventUserInfo": True,
            "historyLimit": self._config.history_limit,
            "expirationDays": self._config.expiration_days,
        }

    def description(self) -> list[str]:
        lines = [f"At least {self._config.min_length} characters long"]
        if self._config.require_uppercase:
            lines.append("Contains uppercase letters (A-Z)")
        if self._config.require_lowercase:
            lines.append("Contains lowercase letters (a-z)")
        if self._config.require_numbers:
            lines.append("Contains numbers (0-9)")
        if self._config.require_special_chars:
            lines.append("Contains special characters (!@#$%^&*)")
        lines.append("Does not contain common passwords or personal information")
        if self._config.history_limit:
            lines.append(f"Differs from your last {self._config.history_limit} passwords")
        return lines

    def is_password_expired(self, changed_at: datetime | None) -> bool:
        if not self._config.expiration_days or changed_at is None:
            return False
        return self._clock() - ensure_aware(changed_at) > timedelta(days=self._config.expiration_days)

    def days_until_expiration(self, changed_at: datetime | None) -> int | None:
        if not self._config.expiration_days or changed_at is None:
            return None
        expires_at = ensure_aware(changed_at) + timedelta(days=self._config.expiration_days)
        remaining = expires_at - self._clock()
        return max(0, remaining.days)


class PasswordHistoryService:
    """Append-only record of previous password hashes, pruned to a retention."""

    def __init__(self, session: AsyncSession, *, limit: int | None = None) -> None:
        self._session = session
        self._limit = settings.password.history_limit if limit is None else limit

    @property
    def limit(self) -> int:
        return self._limit

    async def _recent_hashes(self, user_id: str, limit: int) -> list[str]:
        stmt = (
            select(PasswordHistory.hashed_password)
            .where(PasswordHistory.user_id == user_id)
            .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id.desc())
            .limit(limit)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("password_history_query_failed", user_id=user_id, error=str(exc))
            raise StorageError() from exc
        return list(result.scalars().all())

    async def is_password_in_history(self, user: User, candidate: str) -> bool:
        """Check ``candidate`` against the current hash and the retained history."""

        if verify_password(user.password_hash, candidate):
            return True
        if self._limit <= 0:
            return False
        for stored in await self._recent_hashes(user.id, self._limit):
            if verify_password(stored, candidate):
                return True
        return False

    async def add_password_to_history(self, user_id: str, hashed_password: str) -> None:
        """Stage a history row and prune older ones; the caller commits."""

        self._session.add(PasswordHistory(user_id=user_id, hashed_password=hashed_password))
        try:
            await self._session.flush()
        except SQLAlchemyError as exc:
            logger.error("password_history_write_failed", user_id=user_id, error=str(exc))
            raise StorageError() from exc
        await self.cleanup_old_passwords(user_id)

    async def cleanup_old_passwords(self, user_id: str, keep: int | None = None) -> int:
        retain = self._limit if keep is None else keep
        keep_ids = (
            select(PasswordHistory.id)
            .where(PasswordHistory.user_id == user_id)
            .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id.desc())
            .limit(max(retain, 0))
            .scalar_subquery()
        )
        stmt = delete(PasswordHistory).where(
            PasswordHistory.user_id == user_id,
            PasswordHistory.id.not_in(keep_ids),
        ).execution_options(synchronize_session=False)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("password_history_cleanup_failed", user_id=user_id, error=str(exc))
            raise StorageError() from exc
        return result.rowcount or 0

    async def get_password_history_count(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(PasswordHistory).where(
            PasswordHistory.user_id == user_id
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def clear_password_history(self, user_id: str) -> None:
        await self._session.execute(delete(PasswordHistory).where(PasswordHistory.user_id == user_id))


__all__ = [
    "COMMON_PASSWORDS",
    "PasswordHistoryService",
    "PasswordPolicy",
    "PasswordRequirements",
    "PasswordStrength",
    "calculate_strength",
    "strength_level",
    "user_info_tokens",
    "validate_password",
]
