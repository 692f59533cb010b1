"""SQLAlchemy backed credential store."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import User
from .errors import EmailExists, StorageError
from .logging import get_logger
from .security import hash_secret

logger = get_logger("accounts.repositories")


class UserRepository:
    """Look up and persist :class:`User` rows.

    Lookups return ``None`` when nothing matches. Any driver failure is
    logged with full detail and surfaced as :class:`StorageError`.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def _first(self, stmt) -> User | None:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("credential_store_query_failed", error=str(exc))
            raise StorageError() from exc
        return result.scalars().first()

    async def find_by_id(self, user_id: str) -> User | None:
        return await self._first(select(User).where(User.id == user_id))

    async def find_by_email(self, email: str) -> User | None:
        normalised = email.strip().lower()
        return await self._first(select(User).where(func.lower(User.email) == normalised))

    async def find_by_email_verification_token(self, token: str) -> User | None:
        return await self._first(
            select(User).where(User.email_verification_token == hash_secret(token))
        )

    async def find_by_password_reset_token(self, token: str) -> User | None:
        return await self._first(
            select(User).where(User.password_reset_token == hash_secret(token))
        )

    def _by_phone(self, phone_number: str):
        # the verified owner of a number sorts ahead of pending claimants
        return (
            select(User)
            .where(User.phone_number == phone_number.strip())
            .order_by(User.is_phone_verified.desc(), User.created_at, User.id)
        )

    async def find_by_phone_number(self, phone_number: str) -> User | None:
        return await self._first(self._by_phone(phone_number))

    async def find_all_by_phone_number(self, phone_number: str) -> list[User]:
        """Every account that has claimed ``phone_number``, verified owner first."""

        try:
            result = await self._session.execute(self._by_phone(phone_number))
        except SQLAlchemyError as exc:
            logger.error("credential_store_query_failed", error=str(exc))
            raise StorageError() from exc
        return list(result.scalars().all())

    async def add(self, user: User) -> User:
        self._session.add(user)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise EmailExists() from exc
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("credential_store_insert_failed", error=str(exc))
            raise StorageError() from exc
        return user

    async def save(self, user: User) -> User:
        """Commit pending changes on ``user``."""

        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("credential_store_save_failed", user_id=user.id, error=str(exc))
            raise StorageError() from exc
        return user


__all__ = ["UserRepository"]
