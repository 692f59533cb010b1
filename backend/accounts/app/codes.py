"""Issue and consume single-use verification codes and link tokens.

Each purpose owns a value/expiry column pair on :class:`User`. Issuing a new
value overwrites whatever was pending for that purpose, so at most one code
per purpose is live. Only SHA-256 digests are stored; the plaintext leaves
this module exactly once, for delivery.
"""
from __future__ import annotations

import enum
import hmac
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from ..db.models import User
from .config import AuthSettings, settings
from .errors import AuthError, InvalidOrExpiredCode, InvalidOrExpiredToken
from .security import hash_secret
from .timeutils import ensure_aware, utcnow


class CodeKind(str, enum.Enum):
    LINK = "link"
    NUMERIC = "numeric"


class CodePurpose(str, enum.Enum):
    EMAIL_VERIFICATION_TOKEN = "email_verification_token"
    EMAIL_VERIFICATION_CODE = "email_verification_code"
    PASSWORD_RESET_TOKEN = "password_reset_token"
    PASSWORD_RESET_CODE = "password_reset_code"
    PHONE_VERIFICATION_CODE = "phone_verification_code"
    PHONE_PASSWORD_RESET_CODE = "phone_password_reset_code"
    MFA_CODE = "mfa_code"


@dataclass(frozen=True, slots=True)
class _Slot:
    value_field: str
    expires_field: str
    ttl_setting: str
    kind: CodeKind


_SLOTS: Final[dict[CodePurpose, _Slot]] = {
    CodePurpose.EMAIL_VERIFICATION_TOKEN: _Slot(
        "email_verification_token",
        "email_verification_expires",
        "email_verification_token_ttl_seconds",
        CodeKind.LINK,
    ),
    CodePurpose.EMAIL_VERIFICATION_CODE: _Slot(
        "email_verification_code",
        "email_verification_code_expires",
        "email_verification_code_ttl_seconds",
        CodeKind.NUMERIC,
    ),
    CodePurpose.PASSWORD_RESET_TOKEN: _Slot(
        "password_reset_token",
        "password_reset_expires",
        "password_reset_token_ttl_seconds",
        CodeKind.LINK,
    ),
    CodePurpose.PASSWORD_RESET_CODE: _Slot(
        "password_reset_code",
        "password_reset_code_expires",
        "password_reset_code_ttl_seconds",
        CodeKind.NUMERIC,
    ),
    CodePurpose.PHONE_VERIFICATION_CODE: _Slot(
        "phone_verification_code",
        "phone_verification_expires",
        "phone_verification_code_ttl_seconds",
        CodeKind.NUMERIC,
    ),
    CodePurpose.PHONE_PASSWORD_RESET_CODE: _Slot(
        "phone_password_reset_code",
        "phone_password_reset_expires",
        "phone_password_reset_code_ttl_seconds",
        CodeKind.NUMERIC,
    ),
    CodePurpose.MFA_CODE: _Slot(
        "mfa_code",
        "mfa_code_expires",
        "mfa_code_ttl_seconds",
        CodeKind.NUMERIC,
    ),
}


@dataclass(frozen=True, slots=True)
class IssuedCode:
    """Plaintext value to deliver and the moment it stops being accepted."""

    value: str
    expires_at: datetime


def generate_numeric_code(length: int = 6) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def generate_link_token() -> str:
    return secrets.token_urlsafe(32)


class CodeEngine:
    """Stateless helper that mutates code columns on a user row.

    Callers persist the user afterwards; the engine never touches storage.
    """

    def __init__(
        self,
        config: AuthSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or settings.auth
        self._clock = clock

    def ttl_seconds(self, purpose: CodePurpose) -> int:
        return int(getattr(self._config, _SLOTS[purpose].ttl_setting))

    def issue(self, user: User, purpose: CodePurpose) -> IssuedCode:
        """Generate a fresh value for ``purpose``, replacing any pending one."""

        slot = _SLOTS[purpose]
        if slot.kind is CodeKind.LINK:
            value = generate_link_token()
        else:
            value = generate_numeric_code(self._config.code_length)
        expires_at = self._clock() + timedelta(seconds=self.ttl_seconds(purpose))
        setattr(user, slot.value_field, hash_secret(value))
        setattr(user, slot.expires_field, expires_at)
        return IssuedCode(value=value, expires_at=expires_at)

    def matches(self, user: User, purpose: CodePurpose, candidate: str) -> bool:
        """Return ``True`` when ``candidate`` is the live, unexpired value."""

        slot = _SLOTS[purpose]
        stored = getattr(user, slot.value_field)
        expires_at = ensure_aware(getattr(user, slot.expires_field))
        if not stored or expires_at is None or not candidate:
            return False
        if not hmac.compare_digest(stored, hash_secret(candidate.strip())):
            return False
        return expires_at > self._clock()

    def consume(self, user: User | None, purpose: CodePurpose, candidate: str) -> User:
        """Validate ``candidate`` and clear it so it cannot be replayed."""

        if user is None or not self.matches(user, purpose, candidate):
            raise self.failure(purpose)
        self.clear(user, purpose)
        return user

    def clear(self, user: User, purpose: CodePurpose) -> None:
        slot = _SLOTS[purpose]
        setattr(user, slot.value_field, None)
        setattr(user, slot.expires_field, None)

    @staticmethod
    def failure(purpose: CodePurpose) -> AuthError:
        if _SLOTS[purpose].kind is CodeKind.LINK:
            return InvalidOrExpiredToken()
        return InvalidOrExpiredCode()


__all__ = [
    "CodeEngine",
    "CodeKind",
    "CodePurpose",
    "IssuedCode",
    "generate_link_token",
    "generate_numeric_code",
]
