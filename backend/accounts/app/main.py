"""FastAPI application factory for the accounts service."""
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..db.base import create_engine, dispose_engine
from .config import settings
from .dependencies import get_session_registry
from .errors import AuthError
from .logging import bind_contextvars, clear_contextvars, get_logger, setup_logging
from .routes import auth, mfa, users

setup_logging(level=settings.log_level)

logger = get_logger("accounts.app")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Initialise and tear down shared application resources."""

    create_engine(settings.database_url, echo=settings.sqlalchemy_echo)
    registry = app.dependency_overrides.get(get_session_registry, get_session_registry)()
    registry.start()
    try:
        yield
    finally:
        await registry.stop()
        await dispose_engine()


async def _handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code, path=request.url.path, detail=exc.detail)
    else:
        logger.info("request_rejected", code=exc.code, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(*, api_prefix: str | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Parameters
    ----------
    api_prefix:
        Optional path prefix under which the API routers should be mounted. When
        ``None`` the routers are mounted at the application root.
    """

    app = FastAPI(title="Accounts Service", version="1.0", lifespan=_lifespan)

    if settings.env == "dev":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _bind_request_context(request: Request, call_next):
        clear_contextvars()
        bind_contextvars(
            request_id=request.headers.get("x-request-id") or uuid.uuid4().hex,
            path=request.url.path,
        )
        try:
            return await call_next(request)
        finally:
            clear_contextvars()

    app.add_exception_handler(AuthError, _handle_auth_error)

    router_prefix = (api_prefix or "").rstrip("/")
    if router_prefix and not router_prefix.startswith("/"):
        router_prefix = f"/{router_prefix}"

    for module in (auth, mfa, users):
        app.include_router(module.router, prefix=router_prefix)

    return app


app = create_app(api_prefix="/api")
