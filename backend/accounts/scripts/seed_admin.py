#!/usr/bin/env python3
"""Seed script to create or update the primary admin account."""

from __future__ import annotations

import argparse
import asyncio
from getpass import getpass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from backend.accounts.app.config import settings
from backend.accounts.app.passwords import PasswordHistoryService, user_info_tokens, validate_password
from backend.accounts.app.repositories import UserRepository
from backend.accounts.app.security import hash_password
from backend.accounts.app.timeutils import utcnow
from backend.accounts.db.base import Base, create_engine, create_session, dispose_engine
from backend.accounts.db.models import AccountStatus, User, UserRole


async def _ensure_schema(database_url: str) -> None:
    engine = create_engine(database_url, echo=False, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def seed_admin(
    *,
    database_url: str,
    email: str,
    password: str,
    full_name: Optional[str],
    dispose: bool = True,
) -> User:
    """Create the admin account, or promote and reset an existing one.

    The account comes out ACTIVE, verified and unlocked.
    """

    email = email.strip().lower()
    display_name = (full_name or "Administrator").strip()
    valid, errors = validate_password(
        password,
        user_info_tokens(email=email, full_name=display_name),
        policy=settings.password,
    )
    if not valid:
        raise SystemExit("Admin password rejected: " + "; ".join(errors))

    await _ensure_schema(database_url)

    session = create_session()
    try:
        repository = UserRepository(session)
        history = PasswordHistoryService(session, limit=settings.password.history_limit)
        hashed = hash_password(password)
        user = await repository.find_by_email(email)

        if user is None:
            user = User(email=email, full_name=display_name, password_hash=hashed)
            session.add(user)
        else:
            user.full_name = display_name
            user.password_hash = hashed

        user.role = UserRole.ADMIN
        user.is_active = True
        user.account_status = AccountStatus.ACTIVE
        user.is_email_verified = True
        user.failed_login_attempts = 0
        user.locked_until = None
        user.password_changed_at = utcnow()
        await session.flush()
        await history.add_password_to_history(user.id, hashed)
        await session.commit()
    except IntegrityError as exc:  # pragma: no cover - interactive script guard
        await session.rollback()
        raise SystemExit(f"Failed to create admin user: {exc}") from exc
    finally:
        await session.close()
        if dispose:
            await dispose_engine()

    return user


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed an admin user for the accounts database")
    parser.add_argument(
        "--email",
        default=settings.auth.admin_email,
        help="Admin e-mail address (defaults to AUTH_ADMIN_EMAIL).",
    )
    parser.add_argument("--name", default=None, help="Display name for the admin user")
    parser.add_argument(
        "--password",
        default=None,
        help="Admin password. If omitted, AUTH_ADMIN_PASSWORD or an interactive prompt is used.",
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Database URL to connect to (defaults to configured application URL).",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    if not args.email:
        raise SystemExit("An admin e-mail address is required")
    password = args.password or settings.auth.admin_password or getpass("Admin password: ")
    if not password:
        raise SystemExit("Password cannot be empty")

    user = asyncio.run(
        seed_admin(
            database_url=args.database_url,
            email=args.email,
            password=password,
            full_name=args.name,
        )
    )
    print(f"Admin account ready: {user.full_name} <{user.email}>")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
