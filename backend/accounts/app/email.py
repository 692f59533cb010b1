"""Transactional e-mail dispatch for verification and reset flows."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from .config import AuthSettings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Outcome reported by a notification transport."""

    success: bool
    message: str = ""


class EmailDispatcher:
    """Render account e-mails and hand them to the transport.

    The default transport only logs the message. Deployments replace
    :meth:`send` with a real provider integration.
    """

    def __init__(self, config: AuthSettings | None = None) -> None:
        self._config = config or settings.auth

    def _build_url(self, path: str, token: str) -> str:
        base = self._config.public_base_url.rstrip("/")
        suffix = path if path.startswith("/") else f"/{path}"
        return f"{base}{suffix}?token={token}"

    def password_reset_url(self, token: str) -> str:
        return self._build_url(self._config.password_reset_path, token)

    def email_verification_url(self, token: str) -> str:
        return self._build_url(self._config.email_verification_path, token)

    async def send(
        self,
        to: str,
        subject: str,
        template: str,
        context: Mapping[str, Any],
    ) -> DeliveryResult:
        """Deliver a templated message to ``to``."""

        logger.info(
            "Dispatching email",
            extra={
                "email": to,
                "sender": settings.notifications.sender_address,
                "subject": subject,
                "template": template,
            },
        )
        return DeliveryResult(success=True, message="queued")

    async def send_email_verification_code(
        self, *, email: str, full_name: str, code: str, expires_at: datetime
    ) -> DeliveryResult:
        return await self.send(
            email,
            "Verify your email address",
            "email-verification-code",
            {"name": full_name, "code": code, "expires_at": expires_at.isoformat()},
        )

    async def send_email_verification_link(
        self, *, email: str, full_name: str, token: str, expires_at: datetime
    ) -> DeliveryResult:
        return await self.send(
            email,
            "Verify your email address",
            "email-verification",
            {
                "name": full_name,
                "url": self.email_verification_url(token),
                "token": token,
                "expires_at": expires_at.isoformat(),
            },
        )

    async def send_password_reset_link(
        self, *, email: str, full_name: str, token: str, expires_at: datetime
    ) -> DeliveryResult:
        return await self.send(
            email,
            "Reset your password",
            "password-reset",
            {
                "name": full_name,
                "url": self.password_reset_url(token),
                "token": token,
                "expires_at": expires_at.isoformat(),
            },
        )

    async def send_password_reset_code(
        self, *, email: str, full_name: str, code: str, expires_at: datetime
    ) -> DeliveryResult:
        return await self.send(
            email,
            "Your password reset code",
            "password-reset-code",
            {"name": full_name, "code": code, "expires_at": expires_at.isoformat()},
        )

    async def send_mfa_code(
        self, *, email: str, full_name: str, code: str, expires_at: datetime
    ) -> DeliveryResult:
        return await self.send(
            email,
            "Your sign-in verification code",
            "mfa-code",
            {"name": full_name, "code": code, "expires_at": expires_at.isoformat()},
        )


__all__ = ["DeliveryResult", "EmailDispatcher"]
