"""Password hashing and signed session token helpers."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Final

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
from jwt import InvalidTokenError

from ..db.models import User
from .config import AuthSettings, settings

_PASSWORD_HASHER: Final[PasswordHasher] = PasswordHasher()
_ALGORITHM: Final[str] = "HS256"

ACCESS_TOKEN_TYPE: Final[str] = "access"
MFA_PENDING_TOKEN_TYPE: Final[str] = "mfa_pending"


def hash_password(password: str) -> str:
    """Hash a password using Argon2id with a per-hash random salt."""

    return _PASSWORD_HASHER.hash(password)


def verify_password(stored_hash: str | None, candidate: str) -> bool:
    """Verify a plaintext password against the stored hash in constant time."""

    if not stored_hash:
        return False
    try:
        return _PASSWORD_HASHER.verify(stored_hash, candidate)
    except VerifyMismatchError:
        return False
    except (InvalidHash, VerificationError):
        return False


def hash_secret(value: str) -> str:
    """Digest short-lived secrets (codes, link tokens) before persistence."""

    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """Validated claims of a full session token."""

    user_id: str
    email: str
    role: str
    session_id: str | None
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class PendingMfaClaims:
    """Validated claims of a pending-MFA token."""

    user_id: str
    email: str
    role: str
    expires_at: datetime


class TokenError(Exception):
    """Raised when a token cannot be decoded or carries the wrong shape."""


class TokenIssuer:
    """Mint and validate HS256 tokens for full and pending-MFA sessions."""

    def __init__(self, config: AuthSettings | None = None) -> None:
        self._config = config or settings.auth

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _encode(self, payload: dict[str, Any], ttl_seconds: int) -> tuple[str, datetime]:
        now = self._now()
        expires_at = now + timedelta(seconds=int(ttl_seconds))
        claims = dict(payload)
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int(expires_at.timestamp())
        token = jwt.encode(claims, self._config.jwt_secret, algorithm=_ALGORITHM)
        return token, expires_at

    def _decode(self, token: str, expected_type: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._config.jwt_secret,
                algorithms=[_ALGORITHM],
                options={"require": ["sub", "exp", "typ"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenError("Token expired") from exc
        except InvalidTokenError as exc:
            raise TokenError("Invalid token") from exc

        if payload.get("typ") != expected_type:
            raise TokenError("Unexpected token type")
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise TokenError("Token subject is missing")
        return payload

    def issue_access_token(self, user: User, session_id: str) -> tuple[str, datetime]:
        """Issue a full session token bound to ``session_id``."""

        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "sid": session_id,
            "typ": ACCESS_TOKEN_TYPE,
        }
        return self._encode(payload, self._config.access_token_ttl_seconds)

    def issue_mfa_pending_token(self, user: User) -> tuple[str, datetime]:
        """Issue the short-lived token that only unlocks the MFA step."""

        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "mfa_required": True,
            "temp": True,
            "typ": MFA_PENDING_TOKEN_TYPE,
        }
        return self._encode(payload, self._config.mfa_challenge_token_ttl_seconds)

    def decode_access_token(self, token: str) -> AccessClaims:
        payload = self._decode(token, ACCESS_TOKEN_TYPE)
        if payload.get("temp"):
            raise TokenError("Temporary tokens cannot be used as session tokens")
        return AccessClaims(
            user_id=payload["sub"],
            email=str(payload.get("email") or ""),
            role=str(payload.get("role") or ""),
            session_id=payload.get("sid"),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        )

    def decode_mfa_pending_token(self, token: str) -> PendingMfaClaims:
        payload = self._decode(token, MFA_PENDING_TOKEN_TYPE)
        if payload.get("temp") is not True or payload.get("mfa_required") is not True:
            raise TokenError("Token is not a pending MFA token")
        return PendingMfaClaims(
            user_id=payload["sub"],
            email=str(payload.get("email") or ""),
            role=str(payload.get("role") or ""),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        )


__all__ = [
    "ACCESS_TOKEN_TYPE",
    "AccessClaims",
    "MFA_PENDING_TOKEN_TYPE",
    "PendingMfaClaims",
    "TokenError",
    "TokenIssuer",
    "hash_password",
    "hash_secret",
    "verify_password",
]
