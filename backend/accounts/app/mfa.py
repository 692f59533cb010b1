"""Second factor management: TOTP, one-shot EMAIL/SMS codes and backup codes."""
from __future__ import annotations

import base64
import hmac
import io
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Final

import pyotp
import qrcode
from qrcode.exceptions import DataOverflowError

from ..db.models import TwoFactorMethod, User
from .codes import CodeEngine, CodePurpose, IssuedCode
from .config import AuthSettings, settings
from .errors import (
    InvalidMfaCode,
    InvalidMfaMethod,
    InvalidPassword,
    MfaNotConfigured,
    MfaNotEnabled,
    PhoneNotVerified,
    QrGenerationFailed,
)
from .logging import get_logger
from .repositories import UserRepository
from .security import hash_secret, verify_password
from .timeutils import utcnow

logger = get_logger("accounts.mfa")

_BACKUP_CODE_ALPHABET: Final[str] = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


@dataclass(frozen=True, slots=True)
class TotpSetup:
    secret: str
    otpauth_url: str
    qr_code: str
    backup_codes: list[str]


@dataclass(frozen=True, slots=True)
class MfaMethodChange:
    method: TwoFactorMethod
    mfa_enabled: bool
    backup_codes: list[str] = field(default_factory=list)
    totp: TotpSetup | None = None


def _clean_totp_code(code: str) -> str:
    return "".join(ch for ch in code.strip() if ch.isdigit())


def _clean_backup_code(code: str) -> str:
    return "".join(ch for ch in code.strip().upper() if ch.isalnum())


def generate_backup_codes(count: int, length: int) -> list[str]:
    return [
        "".join(secrets.choice(_BACKUP_CODE_ALPHABET) for _ in range(length))
        for _ in range(count)
    ]


def generate_qr_code(otpauth_url: str) -> str:
    """Render ``otpauth_url`` as a ``data:image/png;base64`` URL."""

    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=8,
            border=4,
        )
        qr.add_data(otpauth_url)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    except (DataOverflowError, ValueError, OSError) as exc:
        logger.error("qr_generation_failed", error=str(exc))
        raise QrGenerationFailed() from exc
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


class MfaService:
    """Enrol, verify and tear down second factors for a user."""

    def __init__(
        self,
        repository: UserRepository,
        *,
        config: AuthSettings | None = None,
        code_engine: CodeEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
        qr_renderer: Callable[[str], str] = generate_qr_code,
    ) -> None:
        self._repository = repository
        self._config = config or settings.auth
        self._codes = code_engine or CodeEngine(self._config, clock=clock)
        self._clock = clock
        self._qr_renderer = qr_renderer

    def _new_backup_codes(self, user: User) -> list[str]:
        codes = generate_backup_codes(self._config.backup_code_count, self._config.backup_code_length)
        user.mfa_backup_codes = [hash_secret(code) for code in codes]
        return codes

    def provisioning_uri(self, user: User, secret: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=self._config.totp_issuer)

    def generate_qr_code(self, otpauth_url: str) -> str:
        return self._qr_renderer(otpauth_url)

    def verify_totp(self, secret: str | None, code: str, *, for_time: datetime | None = None) -> bool:
        """Accept codes within ``totp_valid_window`` 30-second steps of now."""

        if not secret:
            return False
        cleaned = _clean_totp_code(code)
        if len(cleaned) != 6:
            return False
        totp = pyotp.TOTP(secret)
        moment = for_time if for_time is not None else self._clock()
        return bool(totp.verify(cleaned, for_time=moment, valid_window=self._config.totp_valid_window))

    def _confirm_active_factor_change(self, user: User, password: str | None) -> None:
        # replacing a live factor must not be cheaper than disabling it
        if not user.mfa_enabled:
            return
        if password is None or not verify_password(user.password_hash, password):
            raise InvalidPassword("Password confirmation is required to change an active second factor")

    async def setup_totp(self, user: User, password: str | None = None) -> TotpSetup:
        """Create a new secret and backup codes; MFA stays off until confirmed.

        Re-enrolling a user whose MFA is already on requires their password.
        """

        self._confirm_active_factor_change(user, password)
        secret = pyotp.random_base32()
        otpauth_url = self.provisioning_uri(user, secret)
        qr_code = self.generate_qr_code(otpauth_url)

        backup_codes = self._new_backup_codes(user)
        user.mfa_secret = secret
        user.two_factor_method = TwoFactorMethod.TOTP
        user.mfa_enabled = False
        await self._repository.save(user)
        logger.info("mfa_totp_setup_started", user_id=user.id)
        return TotpSetup(
            secret=secret,
            otpauth_url=otpauth_url,
            qr_code=qr_code,
            backup_codes=backup_codes,
        )

    async def enable_mfa(self, user: User, code: str, *, for_time: datetime | None = None) -> None:
        if not user.mfa_secret:
            raise MfaNotConfigured()
        if not self.verify_totp(user.mfa_secret, code, for_time=for_time):
            raise InvalidMfaCode()
        user.mfa_enabled = True
        user.two_factor_method = TwoFactorMethod.TOTP
        await self._repository.save(user)
        logger.info("mfa_enabled", user_id=user.id, method=TwoFactorMethod.TOTP.value)

    async def disable_mfa(self, user: User, password: str) -> None:
        if not verify_password(user.password_hash, password):
            raise InvalidPassword()
        user.mfa_enabled = False
        user.mfa_secret = None
        user.mfa_backup_codes = None
        user.two_factor_method = None
        self._codes.clear(user, CodePurpose.MFA_CODE)
        await self._repository.save(user)
        logger.info("mfa_disabled", user_id=user.id)

    async def verify_mfa_token(
        self, user: User, code: str, *, for_time: datetime | None = None
    ) -> bool:
        """Check ``code`` against the user's configured second factor."""

        method = user.two_factor_method
        if method is None and user.mfa_secret:
            method = TwoFactorMethod.TOTP

        if method is TwoFactorMethod.TOTP:
            return self.verify_totp(user.mfa_secret, code, for_time=for_time)
        if method in (TwoFactorMethod.EMAIL, TwoFactorMethod.SMS):
            if not self._codes.matches(user, CodePurpose.MFA_CODE, _clean_totp_code(code)):
                return False
            self._codes.clear(user, CodePurpose.MFA_CODE)
            await self._repository.save(user)
            return True
        raise InvalidMfaMethod()

    async def verify_backup_code(self, user: User, code: str) -> bool:
        """Consume a backup code; each code works exactly once."""

        stored = list(user.mfa_backup_codes or [])
        cleaned = _clean_backup_code(code)
        if not stored or not cleaned:
            return False
        digest = hash_secret(cleaned)
        match = next((item for item in stored if hmac.compare_digest(item, digest)), None)
        if match is None:
            return False
        stored.remove(match)
        user.mfa_backup_codes = stored
        await self._repository.save(user)
        logger.info("mfa_backup_code_used", user_id=user.id, remaining=len(stored))
        return True

    async def generate_new_backup_codes(self, user: User, password: str) -> list[str]:
        if not verify_password(user.password_hash, password):
            raise InvalidPassword()
        if not user.mfa_enabled:
            raise MfaNotEnabled()
        codes = self._new_backup_codes(user)
        await self._repository.save(user)
        return codes

    async def set_two_factor_method(
        self,
        user: User,
        method: TwoFactorMethod,
        phone_number: str | None = None,
        password: str | None = None,
    ) -> MfaMethodChange:
        """Switch the second factor channel.

        EMAIL and SMS take effect immediately; TOTP starts a fresh enrolment
        that still has to be confirmed through :meth:`enable_mfa`. When MFA is
        already on, ``password`` must be the account password.
        """

        self._confirm_active_factor_change(user, password)
        if method is TwoFactorMethod.TOTP:
            setup = await self.setup_totp(user, password)
            return MfaMethodChange(
                method=method,
                mfa_enabled=False,
                backup_codes=setup.backup_codes,
                totp=setup,
            )

        if method is TwoFactorMethod.SMS:
            target = (phone_number or user.phone_number or "").strip()
            if not target or not user.is_phone_verified or user.phone_number != target:
                raise PhoneNotVerified()
        elif method is not TwoFactorMethod.EMAIL:
            raise InvalidMfaMethod()

        backup_codes = self._new_backup_codes(user)
        user.two_factor_method = method
        user.mfa_secret = None
        user.mfa_enabled = True
        self._codes.clear(user, CodePurpose.MFA_CODE)
        await self._repository.save(user)
        logger.info("mfa_method_changed", user_id=user.id, method=method.value)
        return MfaMethodChange(method=method, mfa_enabled=True, backup_codes=backup_codes)

    async def issue_challenge_code(self, user: User) -> IssuedCode:
        """Store a one-shot code for EMAIL/SMS users; the caller delivers it."""

        issued = self._codes.issue(user, CodePurpose.MFA_CODE)
        await self._repository.save(user)
        return issued


__all__ = [
    "MfaMethodChange",
    "MfaService",
    "TotpSetup",
    "generate_backup_codes",
    "generate_qr_code",
]
