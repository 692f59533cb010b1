"""SQLAlchemy ORM models for the accounts data store."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import CITEXT, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .base import Base


class UserRole(str, enum.Enum):
    """Role associated with a user account."""

    ADMIN = "ADMIN"
    AGENT = "AGENT"
    CLIENT = "CLIENT"


class AccountStatus(str, enum.Enum):
    """Lifecycle status of an account."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class TwoFactorMethod(str, enum.Enum):
    """Second factor delivery channel."""

    TOTP = "TOTP"
    EMAIL = "EMAIL"
    SMS = "SMS"


JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")


class CaseInsensitiveText(TypeDecorator):
    """Case-insensitive text compatible with SQLite and PostgreSQL CITEXT."""

    impl = String
    cache_ok = True

    def __init__(self, length: int = 320) -> None:
        super().__init__(length)
        self.length = length

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(CITEXT())
        return dialect.type_descriptor(String(self.length))


def _new_user_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Registered account holder. Plain mapped data, no behaviour."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_phone_number", "phone_number"),
        Index("ix_users_email_verification_token", "email_verification_token"),
        Index("ix_users_password_reset_token", "password_reset_token"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_user_id)
    email: Mapped[str] = mapped_column(CaseInsensitiveText(), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.CLIENT,
        server_default=UserRole.CLIENT.value,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    account_status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus, name="account_status"),
        nullable=False,
        default=AccountStatus.PENDING,
        server_default=AccountStatus.PENDING.value,
    )
    is_email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_phone_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    email_verification_token: Mapped[Optional[str]] = mapped_column(String(128))
    email_verification_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    email_verification_code: Mapped[Optional[str]] = mapped_column(String(128))
    email_verification_code_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(128))
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    password_reset_code: Mapped[Optional[str]] = mapped_column(String(128))
    password_reset_code_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    phone_number: Mapped[Optional[str]] = mapped_column(String(32))
    phone_verification_code: Mapped[Optional[str]] = mapped_column(String(128))
    phone_verification_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    phone_password_reset_code: Mapped[Optional[str]] = mapped_column(String(128))
    phone_password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    mfa_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    mfa_secret: Mapped[Optional[str]] = mapped_column(Text)
    mfa_backup_codes: Mapped[Optional[List[str]]] = mapped_column(JSON_DOCUMENT)
    two_factor_method: Mapped[Optional[TwoFactorMethod]] = mapped_column(
        Enum(TwoFactorMethod, name="two_factor_method")
    )
    mfa_code: Mapped[Optional[str]] = mapped_column(String(128))
    mfa_code_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(64))
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )

    password_history: Mapped[List["PasswordHistory"]] = relationship(
        "PasswordHistory",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PasswordHistory(Base):
    """Previously used password hashes retained for reuse checks."""

    __tablename__ = "password_history"
    __table_args__ = (Index("ix_password_history_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship("User", back_populates="password_history")


class AuditEvent(Base):
    """Security relevant action recorded for later review."""

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_occurred_at", "occurred_at"),
        Index("ix_audit_events_action", "action"),
        Index("ix_audit_events_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64))
    details: Mapped[Dict[str, Any]] = mapped_column(JSON_DOCUMENT, nullable=False, default=dict)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(512))
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )


__all__ = [
    "AccountStatus",
    "AuditEvent",
    "CaseInsensitiveText",
    "PasswordHistory",
    "TwoFactorMethod",
    "User",
    "UserRole",
]
