# src/profilegate_backend/app/services/provider_config.py
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from profilegate_backend.app.core.config import MAX_ACCESS_TOKEN_TTL, MAX_REFRESH_TOKEN_TTL
from profilegate_backend.app.core.errors import ProviderError, config_exceeded, provider_unavailable
from profilegate_backend.app.core.trace import auth_trace
from profilegate_backend.app.providers.base import AuthSettings, IdentityProvider

log = logging.getLogger(__name__)

_METHOD_LABELS = {
    "google": "Google authentication",
    "email": "Email/password authentication",
}


class ProviderConfigCache:
    """
    Fetches the provider's auth settings once and validates them.

    Concurrent callers share a single in-flight fetch (asyncio.Lock). Only a
    successful, validated fetch is cached; failures are retried on the next call.
    """

    def __init__(self, provider: IdentityProvider):
        self.provider = provider
        self._settings: Optional[AuthSettings] = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> Optional[AuthSettings]:
        return self._settings

    def invalidate(self) -> None:
        self._settings = None

    async def refresh(self) -> AuthSettings:
        self.invalidate()
        return await self._load()

    async def _load(self) -> AuthSettings:
        if self._settings is not None:
            return self._settings
        async with self._lock:
            # another waiter may have filled the cache while we queued
            if self._settings is not None:
                return self._settings
            try:
                settings = await self.provider.get_settings()
            except ProviderError as ex:
                log.warning("auth provider settings fetch failed: %s", ex.message)
                raise provider_unavailable("Unable to verify auth provider settings") from ex

            if settings.access_ttl > MAX_ACCESS_TOKEN_TTL:
                raise config_exceeded("Auth provider access token lifetime exceeds 5 hours")
            if settings.refresh_ttl > MAX_REFRESH_TOKEN_TTL:
                raise config_exceeded("Auth provider refresh token lifetime exceeds 30 days")

            auth_trace(
                "provider.settings.loaded",
                google=settings.google_enabled,
                email=settings.email_enabled,
                access_ttl=settings.access_ttl,
                refresh_ttl=settings.refresh_ttl,
            )
            self._settings = settings
            return settings

    async def ensure(self, method: str) -> AuthSettings:
        settings = await self._load()
        if not settings.method_enabled(method):
            label = _METHOD_LABELS.get(method, f"{method} authentication")
            raise provider_unavailable(f"{label} is not enabled")
        return settings

    # ------------------------
    # Lifetime ceilings
    # ------------------------
    def access_ttl_cap(self, reported: Optional[int]) -> int:
        configured = self._settings.access_ttl if self._settings else 0
        return min(
            reported if reported and reported > 0 else MAX_ACCESS_TOKEN_TTL,
            configured or MAX_ACCESS_TOKEN_TTL,
            MAX_ACCESS_TOKEN_TTL,
        )

    def refresh_ttl(self) -> int:
        configured = self._settings.refresh_ttl if self._settings else 0
        return min(configured or MAX_REFRESH_TOKEN_TTL, MAX_REFRESH_TOKEN_TTL)
