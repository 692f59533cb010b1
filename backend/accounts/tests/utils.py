"""Testing utilities for accounts tests."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import pyotp
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.accounts.app.email import DeliveryResult, EmailDispatcher
from backend.accounts.app.security import hash_password
from backend.accounts.app.sms import SmsDispatcher
from backend.accounts.db.models import AccountStatus, AuditEvent, TwoFactorMethod, User, UserRole

STRONG_PASSWORD = "Tr0ub4dor&3xpand!2024"
OTHER_STRONG_PASSWORD = "Gl4cier#Mount@in97Q"


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}.{uuid.uuid4().hex[:8]}@acme-corp.io"


async def create_user(
    session: AsyncSession,
    *,
    email: str | None = None,
    password: str = STRONG_PASSWORD,
    full_name: str = "Jordan Reyes",
    role: UserRole = UserRole.CLIENT,
    status: AccountStatus = AccountStatus.ACTIVE,
    verified: bool = True,
    active: bool = True,
    phone_number: str | None = None,
    phone_verified: bool = False,
    totp_secret: str | None = None,
) -> User:
    """Persist a ready-to-use account for integration tests."""

    user = User(
        email=(email or unique_email()).lower(),
        full_name=full_name,
        role=role,
        password_hash=hash_password(password),
        is_active=active,
        account_status=status,
        is_email_verified=verified,
        is_phone_verified=phone_verified,
        failed_login_attempts=0,
        phone_number=phone_number,
        mfa_enabled=totp_secret is not None,
        mfa_secret=totp_secret,
        two_factor_method=TwoFactorMethod.TOTP if totp_secret else None,
    )
    session.add(user)
    await session.commit()
    return user


def current_totp(secret: str) -> str:
    return pyotp.TOTP(secret).now()


async def audit_actions(session: AsyncSession, entity_id: str | None = None) -> list[str]:
    stmt = select(AuditEvent.action).order_by(AuditEvent.id)
    if entity_id is not None:
        stmt = stmt.where(AuditEvent.entity_id == entity_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


class InMemoryEmailDispatcher(EmailDispatcher):
    """Capture outgoing e-mails instead of handing them to a transport."""

    def __init__(self) -> None:
        super().__init__()
        self.outbox: list[dict[str, Any]] = []
        self.fail = False

    async def send(
        self,
        to: str,
        subject: str,
        template: str,
        context: Mapping[str, Any],
    ) -> DeliveryResult:
        if self.fail:
            return DeliveryResult(success=False, message="smtp unavailable")
        self.outbox.append({"to": to, "subject": subject, "template": template, **context})
        return DeliveryResult(success=True, message="captured")

    def last(self, template: str) -> dict[str, Any]:
        for message in reversed(self.outbox):
            if message["template"] == template:
                return message
        raise AssertionError(f"No {template!r} e-mail was sent")


class InMemorySmsDispatcher(SmsDispatcher):
    def __init__(self) -> None:
        super().__init__()
        self.outbox: list[dict[str, str]] = []
        self.fail = False

    async def send(self, phone_number: str, body: str) -> DeliveryResult:
        if self.fail:
            return DeliveryResult(success=False, message="gateway rejected message")
        self.outbox.append({"to": phone_number, "body": body, "code": body.rsplit(" ", 1)[-1]})
        return DeliveryResult(success=True, message="captured")


class FrozenClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

