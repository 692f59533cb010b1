"""Request and response models for the accounts API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ..db.models import AccountStatus, TwoFactorMethod, UserRole

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"
CODE_PATTERN = r"^\d{6}$"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class OperationStatus(_Model):
    detail: str


class UserResource(_Model):
    id: str
    email: EmailStr
    full_name: str = Field(alias="fullName")
    role: UserRole
    account_status: AccountStatus = Field(alias="accountStatus")
    is_active: bool = Field(alias="isActive")
    is_email_verified: bool = Field(alias="isEmailVerified")
    is_phone_verified: bool = Field(alias="isPhoneVerified")
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    mfa_enabled: bool = Field(alias="mfaEnabled")
    two_factor_method: TwoFactorMethod | None = Field(default=None, alias="twoFactorMethod")
    last_login: datetime | None = Field(default=None, alias="lastLogin")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ProfileResponse(UserResource):
    password_expired: bool = Field(alias="passwordExpired")
    days_until_password_expiration: int | None = Field(
        default=None, alias="daysUntilPasswordExpiration"
    )


class LoginRequest(_Model):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class LoginResponse(_Model):
    requires_mfa: bool = Field(alias="requiresMfa")
    access_token: str | None = Field(default=None, alias="accessToken")
    token_type: str | None = Field(default=None, alias="tokenType")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    session_id: str | None = Field(default=None, alias="sessionId")
    temp_token: str | None = Field(default=None, alias="tempToken")
    mfa_method: TwoFactorMethod | None = Field(default=None, alias="mfaMethod")
    user: UserResource | None = None


class MfaVerifyRequest(_Model):
    code: str = Field(min_length=6, max_length=16)
    temp_token: str = Field(alias="tempToken", min_length=1)


class RegisterRequest(_Model):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    full_name: str = Field(alias="fullName", min_length=2, max_length=100)
    role: UserRole = UserRole.CLIENT
    phone_number: str | None = Field(default=None, alias="phoneNumber", pattern=PHONE_PATTERN)

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 2:
            raise ValueError("fullName must contain at least 2 characters")
        return cleaned


class RegisterResponse(_Model):
    detail: str
    verification_method: str = Field(alias="verificationMethod")
    user: UserResource


class VerifyEmailCodeRequest(_Model):
    email: EmailStr
    code: str = Field(pattern=CODE_PATTERN)


class EmailRequest(_Model):
    email: EmailStr


class ResetPasswordRequest(_Model):
    token: str = Field(min_length=1)
    new_password: str = Field(alias="newPassword", min_length=8, max_length=128)


class ResetPasswordWithCodeRequest(_Model):
    email: EmailStr
    code: str = Field(pattern=CODE_PATTERN)
    new_password: str = Field(alias="newPassword", min_length=8, max_length=128)


class PhoneRequest(_Model):
    phone_number: str = Field(alias="phoneNumber", pattern=PHONE_PATTERN)


class PhoneVerificationRequest(PhoneRequest):
    password: str | None = Field(default=None, min_length=1)


class PhoneCodeRequest(_Model):
    phone_number: str = Field(alias="phoneNumber", pattern=PHONE_PATTERN)
    code: str = Field(pattern=CODE_PATTERN)


class ResetPasswordWithPhoneRequest(PhoneCodeRequest):
    new_password: str = Field(alias="newPassword", min_length=8, max_length=128)


class ChangePasswordRequest(_Model):
    current_password: str = Field(alias="currentPassword", min_length=1)
    new_password: str = Field(alias="newPassword", min_length=8, max_length=128)


class PasswordStrengthRequest(_Model):
    password: str = Field(max_length=256)
    email: EmailStr | None = None
    full_name: str | None = Field(default=None, alias="fullName")


class PasswordStrengthResponse(_Model):
    score: int
    level: str
    feedback: list[str]
    requirements: dict[str, bool]
    is_valid: bool = Field(alias="isValid")
    errors: list[str] = Field(default_factory=list)


class PasswordPolicyResponse(_Model):
    requirements: dict[str, Any]
    description: list[str]


class MfaSetupResponse(_Model):
    secret: str
    otpauth_url: str = Field(alias="otpauthUrl")
    qr_code: str = Field(alias="qrCode")
    backup_codes: list[str] = Field(alias="backupCodes")


class QrCodeResponse(_Model):
    qr_code: str = Field(alias="qrCode")


class MfaCodeRequest(_Model):
    code: str = Field(pattern=CODE_PATTERN)


class PasswordConfirmRequest(_Model):
    password: str = Field(min_length=1)


class MfaSetupRequest(_Model):
    password: str | None = Field(default=None, min_length=1)


class BackupCodesResponse(_Model):
    detail: str
    backup_codes: list[str] = Field(alias="backupCodes")


class MfaMethodRequest(_Model):
    method: TwoFactorMethod
    phone_number: str | None = Field(default=None, alias="phoneNumber", pattern=PHONE_PATTERN)
    password: str | None = Field(default=None, min_length=1)


class MfaMethodResponse(_Model):
    method: TwoFactorMethod
    mfa_enabled: bool = Field(alias="mfaEnabled")
    backup_codes: list[str] = Field(default_factory=list, alias="backupCodes")
    setup: MfaSetupResponse | None = None


class AccountStatusRequest(_Model):
    status: AccountStatus


class ActiveUserDetail(_Model):
    user_id: str = Field(alias="userId")
    email: str
    full_name: str = Field(alias="fullName")
    last_activity: datetime = Field(alias="lastActivity")
    ip_address: str | None = Field(default=None, alias="ipAddress")


class ActiveUserDetails(_Model):
    admins: list[ActiveUserDetail]
    agents: list[ActiveUserDetail]
    clients: list[ActiveUserDetail]


class ActiveUsersResponse(_Model):
    total: int
    by_role: dict[str, int] = Field(alias="byRole")
    details: ActiveUserDetails


__all__ = [
    "AccountStatusRequest",
    "ActiveUsersResponse",
    "BackupCodesResponse",
    "ChangePasswordRequest",
    "EmailRequest",
    "LoginRequest",
    "LoginResponse",
    "MfaCodeRequest",
    "MfaMethodRequest",
    "MfaMethodResponse",
    "MfaSetupRequest",
    "MfaSetupResponse",
    "MfaVerifyRequest",
    "OperationStatus",
    "PasswordConfirmRequest",
    "PasswordPolicyResponse",
    "PasswordStrengthRequest",
    "PasswordStrengthResponse",
    "PhoneCodeRequest",
    "PhoneRequest",
    "PhoneVerificationRequest",
    "ProfileResponse",
    "QrCodeResponse",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "ResetPasswordWithCodeRequest",
    "ResetPasswordWithPhoneRequest",
    "UserResource",
    "VerifyEmailCodeRequest",
]
