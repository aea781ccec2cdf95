# src/profilegate_backend/app/auth/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from profilegate_backend.app.auth.tokens import get_access_token
from profilegate_backend.app.core.config import (
    VARIANT_GOOGLE,
    Settings,
    get_settings,
)
from profilegate_backend.app.db.repository import ProfileRepository
from profilegate_backend.app.providers.base import IdentityProvider
from profilegate_backend.app.services.identity import IdentityMapper
from profilegate_backend.app.services.profiles import (
    ProfileReconciler,
    federated_profile_complete,
    password_profile_complete,
)
from profilegate_backend.app.services.provider_config import ProviderConfigCache
from profilegate_backend.app.services.sessions import CallerContext, SessionManager


def build_session_manager(
    settings: Settings,
    provider: IdentityProvider,
    session_factory: async_sessionmaker[AsyncSession],
) -> SessionManager:
    """Wire the auth core for the configured variant."""
    federated = settings.auth_variant == VARIANT_GOOGLE
    reconciler = ProfileReconciler(
        ProfileRepository(session_factory),
        provider,
        completeness=federated_profile_complete if federated else password_profile_complete,
        include_extended=not federated,
    )
    return SessionManager(
        provider,
        reconciler,
        IdentityMapper(require_subject=federated),
        ProviderConfigCache(provider),
        variant=settings.auth_variant,
    )


def app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


async def rate_limited(request: Request) -> None:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is not None:
        await limiter(request)


def require_caller():
    """
    Factory that returns an async FastAPI dependency resolving the verified caller.
    The token comes from the Authorization header first, then the access cookie.
    """
    async def _dep(
        request: Request,
        authorization: Optional[str] = Header(None),
        manager: SessionManager = Depends(get_session_manager),
    ) -> CallerContext:
        token = get_access_token(authorization, request.cookies)
        identity = await manager.verifier.verify(token)
        return CallerContext(identity=identity, access_token=token)
    return _dep
