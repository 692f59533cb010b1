"""Tests for the best-effort audit trail."""
from __future__ import annotations

import pytest
from sqlalchemy import select

from backend.accounts.app.audit import AuditAction, AuditLogger
from backend.accounts.db.models import AuditEvent


@pytest.mark.asyncio
async def test_events_are_persisted(db_session, session_factory) -> None:
    audit = AuditLogger(session_factory)

    event = await audit.log(
        AuditAction.USER_LOGIN,
        "User",
        "user-1",
        {"mfaRequired": False},
        user_id="user-1",
        ip_address="198.51.100.4",
        user_agent="pytest",
    )

    assert event is not None
    stored = (await db_session.execute(select(AuditEvent))).scalars().one()
    assert stored.action == "USER_LOGIN"
    assert stored.details == {"mfaRequired": False}
    assert stored.ip_address == "198.51.100.4"


@pytest.mark.asyncio
async def test_unavailable_store_is_tolerated() -> None:
    def factory():
        raise RuntimeError("engine not initialised")

    assert await AuditLogger(factory).log(AuditAction.USER_LOGOUT, "User", "user-1") is None


@pytest.mark.asyncio
async def test_rejected_row_is_dropped(db_session, session_factory) -> None:
    audit = AuditLogger(session_factory)

    result = await audit.log(AuditAction.USER_LOGOUT, None, "user-1")  # type: ignore[arg-type]

    assert result is None
    assert (await db_session.execute(select(AuditEvent))).scalars().all() == []
