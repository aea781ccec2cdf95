# src/profilegate_backend/app/providers/base.py
from __future__ import annotations

import abc
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LinkedIdentity(BaseModel):
    """One federated binding on the provider user (e.g. the Google login)."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    provider: Optional[str] = None
    identity_data: Dict[str, Any] = Field(default_factory=dict)


class ExternalIdentity(BaseModel):
    """
    Provider-side view of a verified user. Snapshot per provider call,
    never persisted as-is.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Optional[str] = None
    email: Optional[str] = None
    app_metadata: Dict[str, Any] = Field(default_factory=dict)
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    last_sign_in_at: Optional[str] = None
    identities: List[LinkedIdentity] = Field(default_factory=list)

    @property
    def provider(self) -> Optional[str]:
        return self.app_metadata.get("provider")

    def linked(self, provider: str) -> Optional[LinkedIdentity]:
        for ident in self.identities:
            if ident.provider == provider:
                return ident
        return None


class ProviderSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = "bearer"
    user: Optional[ExternalIdentity] = None


class AuthResponse(BaseModel):
    """Result of sign-up / sign-in: a user and (unless confirmation is pending) a session."""
    user: Optional[ExternalIdentity] = None
    session: Optional[ProviderSession] = None


class AuthSettings(BaseModel):
    google_enabled: bool = False
    email_enabled: bool = False
    access_ttl: int = 0
    refresh_ttl: int = 0

    def method_enabled(self, method: str) -> bool:
        return {"google": self.google_enabled, "email": self.email_enabled}.get(method, False)

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> "AuthSettings":
        # GoTrue returns the settings at the top level; admin wrappers nest them under "settings"
        settings = (data or {}).get("settings") or data or {}
        external = settings.get("external") or {}

        def _enabled(name: str) -> bool:
            entry = external.get(name)
            if isinstance(entry, dict):
                return bool(entry.get("enabled"))
            return bool(entry)

        def _seconds(*keys: str) -> int:
            for key in keys:
                raw = settings.get(key)
                if raw in (None, ""):
                    continue
                try:
                    return int(float(raw))
                except (TypeError, ValueError):
                    continue
            return 0

        return cls(
            google_enabled=_enabled("google"),
            email_enabled=_enabled("email"),
            access_ttl=_seconds("jwt_expiry", "jwtExpiry"),
            refresh_ttl=_seconds("refresh_token_expiry", "refreshTokenExpiry"),
        )


class IdentityProvider(abc.ABC):
    """
    Contract the auth core needs from the external identity provider.
    Every method raises ProviderError on failure.
    """

    @abc.abstractmethod
    async def get_user(self, access_token: str) -> Optional[ExternalIdentity]:
        ...

    @abc.abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        ...

    @abc.abstractmethod
    async def sign_up(self, email: str, password: str, claims: Optional[Dict[str, Any]] = None) -> AuthResponse:
        ...

    @abc.abstractmethod
    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        ...

    @abc.abstractmethod
    async def admin_sign_out(self, external_id: str) -> None:
        ...

    @abc.abstractmethod
    async def admin_update_claims(self, external_id: str, claims: Dict[str, Any]) -> Optional[ExternalIdentity]:
        ...

    @abc.abstractmethod
    async def sign_out(self, access_token: str) -> None:
        ...

    @abc.abstractmethod
    async def get_settings(self) -> AuthSettings:
        ...

    async def aclose(self) -> None:
        return None
