# src/profilegate_backend/app/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

# config loads .env; logging reads LOG_LEVEL from it
from profilegate_backend.app.core.config import VARIANT_GOOGLE, Settings, get_settings
from profilegate_backend.app.core.logging import setup_logging
setup_logging()

from profilegate_backend.app.api import responses
from profilegate_backend.app.api.ratelimit import AuthRateLimiter
from profilegate_backend.app.api.routes.auth import common_router, google_router, password_router
from profilegate_backend.app.auth.deps import build_session_manager
from profilegate_backend.app.core.errors import AuthError, ErrorKind
from profilegate_backend.app.db.init_db import init_models
from profilegate_backend.app.db.session import check_connection, dispose_engine, get_db, get_engine, make_session_factory
from profilegate_backend.app.providers.base import IdentityProvider
from profilegate_backend.app.providers.gotrue import GoTrueClient

log = logging.getLogger(__name__)


def validation_message(exc: RequestValidationError) -> str:
    """Every field violation, joined by ', '."""
    parts = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        msg = err.get("msg", "Invalid value")
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    return ", ".join(parts) or "Invalid request"


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def _auth_error(_request: Request, exc: AuthError):
        headers = None
        if exc.kind is ErrorKind.RATE_LIMITED and exc.details.get("retry_after"):
            headers = {"Retry-After": str(exc.details["retry_after"])}
        if exc.status_code >= 500:
            log.error("auth request failed: %s %s", exc.kind.value, exc.message)
        return responses.failure(exc.message, exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError):
        return responses.failure(validation_message(exc), 422)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException):
        return responses.failure(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return responses.failure("Internal Server Error", 500)


def create_app(
    settings: Optional[Settings] = None,
    *,
    provider: Optional[IdentityProvider] = None,
    engine: Optional[AsyncEngine] = None,
    create_tables: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    owns_provider = provider is None
    owns_engine = engine is None
    if provider is None:
        provider = GoTrueClient(settings.auth_base_url, settings.supabase_key, timeout=settings.provider_timeout)
    if engine is None:
        engine = get_engine()
    session_factory = make_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await check_connection(engine)
        if create_tables:
            await init_models(engine)
        log.info("profilegate started (variant=%s env=%s)", settings.auth_variant, settings.app_env)
        yield
        if owns_provider:
            await provider.aclose()
        if owns_engine:
            await dispose_engine()

    app = FastAPI(title="ProfileGate API", version="0.3.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.session_manager = build_session_manager(settings, provider, session_factory)
    app.state.rate_limiter = AuthRateLimiter(
        settings.rate_limit_max,
        settings.rate_limit_window,
        trust_proxy=settings.trust_proxy,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _install_error_handlers(app)

    # One reconciliation model per deployment
    app.include_router(common_router)
    if settings.auth_variant == VARIANT_GOOGLE:
        app.include_router(google_router)
    else:
        app.include_router(password_router)

    @app.get("/api/health", tags=["health"])
    async def health():
        return responses.success({"status": "ok"}, "OK")

    @app.get("/api/health/db", tags=["health"])
    async def health_db(db: AsyncSession = Depends(get_db)):
        try:
            await db.execute(text("SELECT 1"))
        except SQLAlchemyError as ex:
            log.warning("database health check failed: %s", ex)
            return responses.failure("Database unavailable", 503)
        return responses.success({"database": "ok"}, "OK")

    return app


# Allows:
#   python -m profilegate_backend.app.main
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "profilegate_backend.app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=get_settings().port,
    )
