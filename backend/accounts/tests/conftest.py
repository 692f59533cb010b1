"""Common test fixtures for accounts unit tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from backend.accounts.app.audit import AuditLogger
from backend.accounts.app.auth_service import AuthService
from backend.accounts.app.config import settings
from backend.accounts.app.dependencies import (
    get_audit_logger,
    get_email_dispatcher,
    get_session,
    get_session_registry,
    get_sms_dispatcher,
)
from backend.accounts.app.main import create_app
from backend.accounts.app.repositories import UserRepository
from backend.accounts.app.sessions import SessionRegistry
from backend.accounts.db.base import Base, create_engine, create_session, dispose_engine

from .utils import FrozenClock, InMemoryEmailDispatcher, InMemorySmsDispatcher


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """Return a SQLite database URL located in a temporary directory."""

    return f"sqlite+aiosqlite:///{tmp_path / 'accounts.sqlite3'}"


@pytest_asyncio.fixture
async def db_engine(db_url: str) -> AsyncIterator[AsyncEngine]:
    """Initialise the global async engine with a fresh schema."""

    engine = create_engine(db_url, echo=False, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await dispose_engine()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Yield an :class:`AsyncSession` bound to the test database."""

    session = create_session()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> Callable[[], AsyncSession]:
    """Provide a helper to create fresh async sessions on demand."""

    def factory() -> AsyncSession:
        return create_session()

    return factory


@pytest.fixture
def email_dispatcher() -> InMemoryEmailDispatcher:
    return InMemoryEmailDispatcher()


@pytest.fixture
def sms_dispatcher() -> InMemorySmsDispatcher:
    return InMemorySmsDispatcher()


@pytest.fixture
def session_registry() -> SessionRegistry:
    return SessionRegistry(settings.sessions)


@pytest.fixture
def audit_logger(session_factory: Callable[[], AsyncSession]) -> AuditLogger:
    return AuditLogger(session_factory)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def auth_service(
    db_session: AsyncSession,
    email_dispatcher: InMemoryEmailDispatcher,
    sms_dispatcher: InMemorySmsDispatcher,
    audit_logger: AuditLogger,
    session_registry: SessionRegistry,
) -> AuthService:
    return AuthService(
        UserRepository(db_session),
        email_dispatcher=email_dispatcher,
        sms_dispatcher=sms_dispatcher,
        audit_logger=audit_logger,
        session_registry=session_registry,
        config=settings,
    )


@pytest.fixture
def app(
    db_session: AsyncSession,
    email_dispatcher: InMemoryEmailDispatcher,
    sms_dispatcher: InMemorySmsDispatcher,
    audit_logger: AuditLogger,
    session_registry: SessionRegistry,
):
    """Create a FastAPI test application with database and transport overrides."""

    application = create_app()

    async def _override_session():
        yield db_session

    application.dependency_overrides[get_session] = _override_session
    application.dependency_overrides[get_email_dispatcher] = lambda: email_dispatcher
    application.dependency_overrides[get_sms_dispatcher] = lambda: sms_dispatcher
    application.dependency_overrides[get_audit_logger] = lambda: audit_logger
    application.dependency_overrides[get_session_registry] = lambda: session_registry
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
        yield http
