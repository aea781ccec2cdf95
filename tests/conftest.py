# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Tracing stays off unless the shell asks for it
os.environ.setdefault("AUTH_TRACE", "false")

from profilegate_backend.app.core.config import Settings  # noqa: E402
from profilegate_backend.app.core.errors import ProviderError  # noqa: E402
from profilegate_backend.app.db.init_db import init_models  # noqa: E402
from profilegate_backend.app.db.repository import ProfileRepository  # noqa: E402
from profilegate_backend.app.db.session import make_session_factory  # noqa: E402
from profilegate_backend.app.main import create_app  # noqa: E402
from profilegate_backend.app.providers.base import (  # noqa: E402
    AuthResponse,
    AuthSettings,
    ExternalIdentity,
    IdentityProvider,
    LinkedIdentity,
    ProviderSession,
)

MEMORY_DB = "sqlite+aiosqlite://"


# ---------- Identity builders ----------
def google_user(
    uid: str = "user-123",
    email: str = "jo@example.com",
    *,
    last_sign_in_at: Optional[str] = "2024-05-01T10:00:00Z",
    linked: bool = True,
    provider: str = "google",
    **metadata: Any,
) -> ExternalIdentity:
    identities = [LinkedIdentity(provider="google", identity_data={"sub": f"google-{uid}"})] if linked else []
    return ExternalIdentity(
        id=uid,
        email=email,
        app_metadata={"provider": provider},
        user_metadata=metadata,
        last_sign_in_at=last_sign_in_at,
        identities=identities,
    )


def email_user(uid: str = "user-123", email: str = "jo@example.com", **metadata: Any) -> ExternalIdentity:
    return ExternalIdentity(
        id=uid,
        email=email,
        app_metadata={"provider": "email"},
        user_metadata=metadata,
        last_sign_in_at="2024-05-01T10:00:00Z",
    )


COMPLETE_PROFILE = {
    "name": "Jo Bloggs",
    "gender": "FEMALE",
    "dob": "1994-03-12",
    "heightFeet": 5,
    "heightInches": 4,
    "religion": "HINDU",
    "caste": "Iyer",
    "rashi": "MESHA",
}


# ---------- Fake identity provider ----------
class FakeProvider(IdentityProvider):
    """In-memory identity provider recording every call."""

    def __init__(self) -> None:
        self.settings = AuthSettings(google_enabled=True, email_enabled=True, access_ttl=3600, refresh_ttl=604800)
        self.tokens: Dict[str, ExternalIdentity] = {}
        self.refresh_tokens: Dict[str, ProviderSession] = {}
        self.accounts: Dict[str, Tuple[str, ExternalIdentity]] = {}
        self.require_confirmation = False
        self.expires_in = 3600
        self.failures: Dict[str, ProviderError] = {}
        self.calls: Counter = Counter()
        self.claim_updates: List[Tuple[str, Dict[str, Any]]] = []
        self.admin_sign_outs: List[str] = []
        self.sign_outs: List[str] = []

    # helpers
    def add_token(self, token: str, identity: ExternalIdentity) -> None:
        self.tokens[token] = identity

    def add_refresh(self, token: str, identity: ExternalIdentity, *, access: str = "rotated-access",
                    rotated: Optional[str] = "rotated-refresh", expires_in: int = 1800) -> None:
        self.refresh_tokens[token] = ProviderSession(
            access_token=access,
            refresh_token=rotated,
            expires_in=expires_in,
            user=identity,
        )

    def add_account(self, email: str, password: str, identity: ExternalIdentity) -> None:
        self.accounts[email] = (password, identity)

    def fail(self, method: str, status: Optional[int], message: str = "provider failure") -> None:
        self.failures[method] = ProviderError(status, message)

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if method in self.failures:
            raise self.failures[method]

    def _session_for(self, identity: ExternalIdentity) -> ProviderSession:
        return ProviderSession(
            access_token=f"access-{identity.id}",
            refresh_token=f"refresh-{identity.id}",
            expires_in=self.expires_in,
            user=identity,
        )

    # IdentityProvider
    async def get_user(self, access_token: str) -> Optional[ExternalIdentity]:
        self._enter("get_user")
        if access_token not in self.tokens:
            raise ProviderError(401, "invalid JWT")
        return self.tokens[access_token]

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        self._enter("sign_in_with_password")
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise ProviderError(400, "Invalid login credentials")
        identity = account[1]
        return AuthResponse(user=identity, session=self._session_for(identity))

    async def sign_up(self, email: str, password: str, claims: Optional[Dict[str, Any]] = None) -> AuthResponse:
        self._enter("sign_up")
        if email in self.accounts:
            raise ProviderError(422, "User already registered")
        identity = email_user(f"user-{len(self.accounts) + 1}", email, **(claims or {}))
        self.accounts[email] = (password, identity)
        if self.require_confirmation:
            return AuthResponse(user=identity, session=None)
        return AuthResponse(user=identity, session=self._session_for(identity))

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        self._enter("refresh_session")
        if refresh_token not in self.refresh_tokens:
            raise ProviderError(401, "Invalid Refresh Token")
        return self.refresh_tokens[refresh_token]

    async def admin_sign_out(self, external_id: str) -> None:
        self._enter("admin_sign_out")
        self.admin_sign_outs.append(external_id)

    async def admin_update_claims(self, external_id: str, claims: Dict[str, Any]) -> Optional[ExternalIdentity]:
        self._enter("admin_update_claims")
        self.claim_updates.append((external_id, dict(claims)))
        for token, identity in self.tokens.items():
            if identity.id == external_id:
                self.tokens[token] = identity.model_copy(update={"user_metadata": dict(claims)})
        for email, (password, identity) in self.accounts.items():
            if identity.id == external_id:
                self.accounts[email] = (password, identity.model_copy(update={"user_metadata": dict(claims)}))
        return None

    async def sign_out(self, access_token: str) -> None:
        self._enter("sign_out")
        self.sign_outs.append(access_token)

    async def get_settings(self) -> AuthSettings:
        self._enter("get_settings")
        return self.settings


# ---------- Fixtures ----------
@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def engine():
    eng = create_async_engine(MEMORY_DB, poolclass=StaticPool)
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def repository(engine) -> ProfileRepository:
    return ProfileRepository(make_session_factory(engine))


def make_settings(variant: str, **overrides: Any) -> Settings:
    values = dict(
        auth_variant=variant,
        supabase_url="http://auth.test",
        supabase_key="service-role-key",
        database_url=MEMORY_DB,
        rate_limit_max=20,
        rate_limit_window=900,
    )
    values.update(overrides)
    return Settings(**values)


def _client(variant: str, provider: FakeProvider, **overrides: Any):
    eng = create_async_engine(MEMORY_DB, poolclass=StaticPool)
    app = create_app(make_settings(variant, **overrides), provider=provider, engine=eng)
    with TestClient(app) as client:
        yield client
    asyncio.run(eng.dispose())


@pytest.fixture
def google_client(provider):
    yield from _client("google", provider)


@pytest.fixture
def password_client(provider):
    yield from _client("password", provider)

