"""Declarative base plus the process-wide async engine used by the accounts store."""
from __future__ import annotations

from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(table_name)s_%(column_0_name)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """Base class for users, password history and audit rows."""

    metadata = metadata


_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Return the cached engine, building it and its sessionmaker on first use.

    Server databases get ``pool_pre_ping`` so connections dropped by the
    server between requests are replaced transparently. Loaded rows stay
    usable after commit because account objects are passed on to audit and
    session bookkeeping once the transaction has finished.
    """

    global _engine, _sessions

    if _engine is not None:
        return _engine

    if not make_url(database_url).get_backend_name().startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
    _engine = create_async_engine(database_url, **kwargs)
    _sessions = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def create_session(**kwargs: Any) -> AsyncSession:
    """Open a new :class:`AsyncSession` on the cached engine."""

    if _sessions is None:
        raise RuntimeError("Accounts database engine has not been created")
    return _sessions(**kwargs)


async def dispose_engine() -> None:
    """Close pooled connections and forget the cached engine."""

    global _engine, _sessions

    engine, _engine, _sessions = _engine, None, None
    if engine is not None:
        await engine.dispose()


__all__ = [
    "AsyncEngine",
    "AsyncSession",
    "Base",
    "create_engine",
    "create_session",
    "dispose_engine",
    "metadata",
]
