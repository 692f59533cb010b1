"""In-process registry of active user sessions.

The registry is the live-users dashboard source: it is not persisted and
does not survive restarts. Entries idle for longer than the configured
timeout are dropped by a periodic sweep and ignored by every read even
before the sweep gets to them.
"""
from __future__ import annotations

import asyncio
import contextlib
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from ..db.models import User, UserRole
from .config import SessionSettings, settings
from .logging import get_logger
from .timeutils import utcnow

logger = get_logger("accounts.sessions")


@dataclass(frozen=True, slots=True)
class ActiveSession:
    session_id: str
    user_id: str
    user_role: UserRole
    email: str
    full_name: str
    last_activity: datetime
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class SessionRegistry:
    """Thread-safe map of session id to :class:`ActiveSession`."""

    def __init__(
        self,
        config: SessionSettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or settings.sessions
        self._clock = clock
        self._sessions: dict[str, ActiveSession] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def idle_timeout(self) -> timedelta:
        return timedelta(seconds=self._config.idle_timeout_seconds)

    def _is_live(self, session: ActiveSession, now: datetime) -> bool:
        return now - session.last_activity < self.idle_timeout

    def _new_session_id(self, user_id: str, now: datetime) -> str:
        return f"{user_id}_{int(now.timestamp() * 1000)}_{secrets.token_hex(8)}"

    def add_session(
        self,
        user: User,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ActiveSession:
        now = self._clock()
        session = ActiveSession(
            session_id=self._new_session_id(user.id, now),
            user_id=user.id,
            user_role=user.role,
            email=user.email,
            full_name=user.full_name,
            last_activity=now,
            created_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("session_started", session_id=session.session_id, user_id=user.id)
        return session

    def get_session(self, session_id: str) -> ActiveSession | None:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or not self._is_live(session, now):
            return None
        return session

    def update_activity(self, session_id: str) -> bool:
        """Refresh ``last_activity``; returns ``False`` for unknown or idle sessions."""

        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            if not self._is_live(session, now):
                del self._sessions[session_id]
                return False
            self._sessions[session_id] = replace(session, last_activity=now)
        return True

    def remove_session(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        return removed is not None

    def remove_user_sessions(self, user_id: str) -> int:
        with self._lock:
            doomed = [key for key, session in self._sessions.items() if session.user_id == user_id]
            for key in doomed:
                del self._sessions[key]
        return len(doomed)

    def _live_sessions(self) -> list[ActiveSession]:
        now = self._clock()
        with self._lock:
            sessions = list(self._sessions.values())
        return [session for session in sessions if self._is_live(session, now)]

    def get_active_sessions_count(self) -> int:
        return len(self._live_sessions())

    def get_active_users_by_role(self, detail_limit: int | None = None) -> dict[str, Any]:
        """Summarise live sessions per role with a capped detail list each."""

        limit = self._config.detail_limit if detail_limit is None else max(detail_limit, 0)
        by_role = {role.value: 0 for role in UserRole}
        details: dict[str, list[dict[str, Any]]] = {"admins": [], "agents": [], "clients": []}
        buckets = {
            UserRole.ADMIN: details["admins"],
            UserRole.AGENT: details["agents"],
            UserRole.CLIENT: details["clients"],
        }
        sessions = sorted(self._live_sessions(), key=lambda item: item.last_activity, reverse=True)
        for session in sessions:
            by_role[session.user_role.value] += 1
            bucket = buckets[session.user_role]
            if len(bucket) < limit:
                bucket.append(
                    {
                        "userId": session.user_id,
                        "email": session.email,
                        "fullName": session.full_name,
                        "lastActivity": session.last_activity,
                        "ipAddress": session.ip_address,
                    }
                )
        return {"total": len(sessions), "byRole": by_role, "details": details}

    def sweep_expired(self) -> int:
        """Drop idle sessions and return how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [key for key, session in self._sessions.items() if not self._is_live(session, now)]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.info("session_sweep", removed=len(expired))
        return len(expired)

    async def _sweep_forever(self) -> None:
        interval = self._config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()

    def start(self) -> None:
        """Launch the periodic sweep on the running event loop."""

        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


__all__ = ["ActiveSession", "SessionRegistry"]
