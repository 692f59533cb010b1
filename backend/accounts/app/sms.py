"""SMS dispatch for phone verification, phone resets and MFA codes."""
from __future__ import annotations

import logging

from .config import NotificationSettings, settings
from .email import DeliveryResult

logger = logging.getLogger(__name__)


class SmsDispatcher:
    """Send short numeric codes by text message.

    The default transport only logs; swap :meth:`send` for a provider client.
    """

    def __init__(self, config: NotificationSettings | None = None) -> None:
        self._config = config or settings.notifications

    async def send(self, phone_number: str, body: str) -> DeliveryResult:
        logger.info(
            "Dispatching SMS",
            extra={"phone_number": _mask(phone_number), "sender_id": self._config.sms_sender_id},
        )
        return DeliveryResult(success=True, message="queued")

    async def send_verification_code(self, phone_number: str, code: str) -> DeliveryResult:
        return await self.send(phone_number, f"Your verification code is {code}")

    async def send_password_reset_code(self, phone_number: str, code: str) -> DeliveryResult:
        return await self.send(phone_number, f"Your password reset code is {code}")

    async def send_mfa_code(self, phone_number: str, code: str) -> DeliveryResult:
        return await self.send(phone_number, f"Your sign-in code is {code}")


def _mask(phone_number: str) -> str:
    if len(phone_number) <= 4:
        return "*" * len(phone_number)
    return "*" * (len(phone_number) - 4) + phone_number[-4:]


__all__ = ["SmsDispatcher"]
