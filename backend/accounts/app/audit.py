"""Best-effort audit trail recording."""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import AuditEvent
from .logging import get_logger


logger = get_logger("accounts.audit")


class AuditAction:
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    USER_LOGOUT = "USER_LOGOUT"
    MFA_VERIFIED = "MFA_VERIFIED"
    MFA_FAILED = "MFA_FAILED"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_METHOD_CHANGED = "MFA_METHOD_CHANGED"
    BACKUP_CODES_REGENERATED = "BACKUP_CODES_REGENERATED"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    PHONE_VERIFIED = "PHONE_VERIFIED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    ACCOUNT_STATUS_CHANGED = "ACCOUNT_STATUS_CHANGED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"


class AuditLogger:
    """Persist audit events on a dedicated session.

    Failures are reported through the structured log and never propagate,
    so a broken audit table cannot undo or block the operation being
    audited.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | None = None,
        details: Mapping[str, Any] | None = None,
        *,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        occurred_at: datetime | None = None,
    ) -> AuditEvent | None:
        event = AuditEvent(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=dict(details or {}),
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )
        try:
            session = self._session_factory()
        except (RuntimeError, SQLAlchemyError) as exc:
            logger.error("audit_event_dropped", action=action, entity_id=entity_id, error=str(exc))
            return None

        try:
            session.add(event)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.error(
                "audit_event_dropped",
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(exc),
            )
            return None
        finally:
            await session.close()
        return event


__all__ = ["AuditAction", "AuditLogger"]
