"""Database helpers for the accounts service."""
from __future__ import annotations

from . import models as _models
from .base import (
    AsyncEngine,
    AsyncSession,
    Base,
    create_engine,
    create_session,
    dispose_engine,
    metadata,
)
from .models import *  # noqa: F401,F403
from .session import get_session

__all__ = [
    "AsyncEngine",
    "AsyncSession",
    "Base",
    "create_engine",
    "create_session",
    "dispose_engine",
    "get_session",
    "metadata",
] + _models.__all__
