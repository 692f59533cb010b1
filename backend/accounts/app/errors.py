"""Typed failures raised by the account security services.

Every error carries a stable machine ``code`` and the HTTP status the API
layer should answer with. Messages are safe to show to end users; anything
sensitive is logged server-side instead.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from fastapi import status


class AuthError(Exception):
    """Base class for predictable authentication and account failures."""

    code = "auth_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Authentication request failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid credentials"


class EmailNotVerified(InvalidCredentials):
    code = "email_not_verified"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Please verify your email address before logging in"


class AccountLocked(AuthError):
    code = "account_locked"
    status_code = status.HTTP_423_LOCKED
    default_detail = "Account is temporarily locked due to too many failed login attempts"

    def __init__(self, locked_until: datetime | None = None, detail: str | None = None) -> None:
        super().__init__(detail)
        self.locked_until = locked_until

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.locked_until is not None:
            payload["lockedUntil"] = self.locked_until.isoformat()
        return payload


class AccountDeactivated(AuthError):
    code = "account_deactivated"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Account is deactivated"


class EmailExists(AuthError):
    code = "email_exists"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "An account with this email already exists"


class DisposableEmail(AuthError):
    code = "disposable_email"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = (
        "Please use a real email address. Temporary or disposable email addresses are not allowed."
    )


class PasswordPolicyViolation(AuthError):
    code = "password_policy_violation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Password does not meet the security requirements"

    def __init__(self, errors: Sequence[str], detail: str | None = None) -> None:
        super().__init__(detail)
        self.errors = list(errors)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["errors"] = self.errors
        return payload


class PasswordReused(AuthError):
    code = "password_reused"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Password was used recently. Please choose a different password"


class InvalidPassword(AuthError):
    code = "invalid_password"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid password"


class InvalidOrExpiredCode(AuthError):
    code = "invalid_or_expired_code"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid or expired code"


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid or expired token"


class InvalidMfaVerification(AuthError):
    code = "invalid_mfa_verification"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid MFA verification"


class InvalidMfaCode(AuthError):
    code = "invalid_mfa_code"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid MFA code"


class InvalidMfaMethod(AuthError):
    code = "invalid_mfa_method"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Unsupported MFA method"


class MfaNotConfigured(AuthError):
    code = "mfa_not_configured"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "MFA has not been set up for this account"


class MfaNotEnabled(AuthError):
    code = "mfa_not_enabled"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "MFA is not enabled for this account"


class PhoneNotVerified(AuthError):
    code = "phone_not_verified"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "A verified phone number is required for SMS verification"


class PhoneNumberInUse(AuthError):
    code = "phone_number_in_use"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This phone number is already verified on another account"


class InvalidStatusTransition(AuthError):
    code = "invalid_status_transition"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Account status change is not allowed"


class UserNotFound(AuthError):
    code = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class PermissionDenied(AuthError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Insufficient role"


class QrGenerationFailed(AuthError):
    code = "qr_generation_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to generate QR code"


class SmsSendFailed(AuthError):
    code = "sms_send_failed"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Failed to send SMS"


class StorageError(AuthError):
    code = "storage_error"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "The account store is temporarily unavailable"


__all__ = [
    "AccountDeactivated",
    "AccountLocked",
    "AuthError",
    "DisposableEmail",
    "EmailExists",
    "EmailNotVerified",
    "InvalidCredentials",
    "InvalidMfaCode",
    "InvalidMfaMethod",
    "InvalidMfaVerification",
    "InvalidOrExpiredCode",
    "InvalidOrExpiredToken",
    "InvalidPassword",
    "InvalidStatusTransition",
    "MfaNotConfigured",
    "MfaNotEnabled",
    "NotAuthenticated",
    "PasswordPolicyViolation",
    "PasswordReused",
    "PermissionDenied",
    "PhoneNotVerified",
    "PhoneNumberInUse",
    "QrGenerationFailed",
    "SmsSendFailed",
    "StorageError",
    "UserNotFound",
]
