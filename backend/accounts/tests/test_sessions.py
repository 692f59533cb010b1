"""Tests for the in-process active session registry."""
from __future__ import annotations

import asyncio
import threading

import pytest

from backend.accounts.app.config import SessionSettings
from backend.accounts.app.sessions import SessionRegistry
from backend.accounts.db.models import User, UserRole


def _user(user_id: str, role: UserRole = UserRole.CLIENT) -> User:
    return User(
        id=user_id,
        email=f"{user_id}@acme-corp.io",
        full_name=f"User {user_id}",
        role=role,
        password_hash="x",
    )


def test_session_ids_are_unique_and_prefixed(clock) -> None:
    registry = SessionRegistry(SessionSettings(), clock=clock)
    user = _user("u1")

    first = registry.add_session(user)
    second = registry.add_session(user)

    assert first.session_id != second.session_id
    assert first.session_id.startswith("u1_")
    assert registry.get_active_sessions_count() == 2


def test_idle_sessions_are_not_counted_before_sweep(clock) -> None:
    registry = SessionRegistry(SessionSettings(), clock=clock)
    session = registry.add_session(_user("u1"))

    clock.advance(minutes=29, seconds=59)
    assert registry.get_session(session.session_id) is not None

    clock.advance(seconds=1)
    assert registry.get_active_sessions_count() == 0
    assert registry.get_session(session.session_id) is None
    assert registry.get_active_users_by_role()["total"] == 0


def test_update_activity_extends_session(clock) -> None:
    registry = SessionRegistry(SessionSettings(), clock=clock)
    session = registry.add_session(_user("u1"))

    clock.advance(minutes=20)
    assert registry.update_activity(session.session_id) is True
    clock.advance(minutes=20)

    assert registry.get_active_sessions_count() == 1
    assert registry.update_activity("missing") is False


def test_sweep_removes_only_idle_sessions(clock) -> None:
    registry = SessionRegistry(SessionSettings(), clock=clock)
    stale = registry.add_session(_user("u1"))
    clock.advance(minutes=25)
    fresh = registry.add_session(_user("u2"))
    clock.advance(minutes=10)

    assert registry.sweep_expired() == 1
    assert registry.get_session(stale.session_id) is None
    assert registry.get_session(fresh.session_id) is not None


def test_remove_session_and_user_sessions(clock) -> None:
    registry = SessionRegistry(SessionSettings(), clock=clock)
    session = registry.add_session(_user("u1"))
    registry.add_session(_user("u1"))
    registry.add_session(_user("u2"))

    assert registry.remove_session(session.session_id) is True
    assert registry.remove_session(session.session_id) is False
    assert registry.remove_user_sessions("u1") == 1
    assert registry.get_active_sessions_count() == 1


def test_active_users_grouped_by_role_with_detail_cap(clock) -> None:
    registry = SessionRegistry(SessionSettings(detail_limit=2), clock=clock)
    registry.add_session(_user("admin1", UserRole.ADMIN), ip_address="10.0.0.1")
    for index in range(3):
        registry.add_session(_user(f"agent{index}", UserRole.AGENT))
        clock.advance(seconds=1)

    summary = registry.get_active_users_by_role()

    assert summary["total"] == 4
    assert summary["byRole"] == {"ADMIN": 1, "AGENT": 3, "CLIENT": 0}
    assert len(summary["details"]["agents"]) == 2
    assert summary["details"]["agents"][0]["userId"] == "agent2"
    assert summary["details"]["admins"][0]["ipAddress"] == "10.0.0.1"
    assert summary["details"]["clients"] == []


def test_concurrent_additions_are_all_recorded() -> None:
    registry = SessionRegistry(SessionSettings())

    def worker(prefix: str) -> None:
        for index in range(200):
            registry.add_session(_user(f"{prefix}{index}"))

    threads = [threading.Thread(target=worker, args=(name,)) for name in "abcd"]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.get_active_sessions_count() == 800


@pytest.mark.asyncio
async def test_background_sweep_start_and_stop() -> None:
    registry = SessionRegistry(SessionSettings(sweep_interval_seconds=1))

    registry.start()
    assert registry.running is True
    registry.start()
    await asyncio.sleep(0)

    await registry.stop()
    assert registry.running is False
    await registry.stop()
