"""Common FastAPI dependency helpers."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.base import create_session
from ..db.models import User, UserRole
from ..db.session import get_session
from .audit import AuditLogger
from .auth_service import AuthService, RequestContext
from .config import settings
from .email import EmailDispatcher
from .errors import NotAuthenticated, PermissionDenied
from .repositories import UserRepository
from .sessions import SessionRegistry
from .sms import SmsDispatcher


_bearer_scheme = HTTPBearer(auto_error=False)

_email_dispatcher = EmailDispatcher(settings.auth)
_sms_dispatcher = SmsDispatcher(settings.notifications)
_audit_logger = AuditLogger(create_session)
_session_registry = SessionRegistry(settings.sessions)


def get_email_dispatcher() -> EmailDispatcher:
    """Return the configured e-mail dispatcher instance."""

    return _email_dispatcher


def get_sms_dispatcher() -> SmsDispatcher:
    return _sms_dispatcher


def get_audit_logger() -> AuditLogger:
    return _audit_logger


def get_session_registry() -> SessionRegistry:
    """Return the process-wide active session registry."""

    return _session_registry


def get_auth_service(
    db: AsyncSession = Depends(get_session),
    email_dispatcher: EmailDispatcher = Depends(get_email_dispatcher),
    sms_dispatcher: SmsDispatcher = Depends(get_sms_dispatcher),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    session_registry: SessionRegistry = Depends(get_session_registry),
) -> AuthService:
    return AuthService(
        UserRepository(db),
        email_dispatcher=email_dispatcher,
        sms_dispatcher=sms_dispatcher,
        audit_logger=audit_logger,
        session_registry=session_registry,
        config=settings,
    )


def _extract_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",", 1)[0].strip()
        if candidate:
            return candidate
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    client = request.client
    if client and client.host:
        return client.host
    return None


def get_request_context(request: Request) -> RequestContext:
    """Collect client metadata for auditing; never used for decisions."""

    return RequestContext(
        ip_address=_extract_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@dataclass(frozen=True, slots=True)
class Principal:
    user: User
    session_id: str | None


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    service: AuthService = Depends(get_auth_service),
) -> Principal:
    if credentials is None:
        raise NotAuthenticated()
    user, session_id = await service.authenticate(credentials.credentials)
    return Principal(user=user, session_id=session_id)


async def get_current_user(principal: Principal = Security(get_current_principal)) -> User:
    return principal.user


def RequireRoles(*roles: UserRole):
    """Ensure the current user carries one of the supplied roles."""

    if not roles:
        raise ValueError("At least one role must be provided")
    required = frozenset(roles)

    async def dependency(current_user: User = Security(get_current_user)) -> User:
        if current_user.role not in required:
            raise PermissionDenied()
        return current_user

    return dependency


__all__ = [
    "Principal",
    "RequireRoles",
    "get_audit_logger",
    "get_auth_service",
    "get_current_principal",
    "get_current_user",
    "get_email_dispatcher",
    "get_request_context",
    "get_session",
    "get_session_registry",
    "get_sms_dispatcher",
]
