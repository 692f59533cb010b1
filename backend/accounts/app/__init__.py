"""FastAPI application package for the accounts service."""

from .logging import setup_logging

setup_logging()

__all__ = ["setup_logging"]
