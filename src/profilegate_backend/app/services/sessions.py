# src/profilegate_backend/app/services/sessions.py
"""
Session Manager: orchestrates provider calls, identity mapping, profile
reconciliation and lifetime ceilings for every auth flow.

Flows:
  exchange_google_session  -> provider settings, verify token, map, reconcile, cap
  register / login         -> provider settings, sign-up / sign-in, map, reconcile, cap
  refresh                  -> provider settings, rotate tokens, map, update existing profile, cap
  logout                   -> admin sign-out, then best-effort client sign-out
  get_profile / update_profile

All provider and datastore failures leave this module as AuthError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from profilegate_backend.app.auth.verifier import SessionVerifier
from profilegate_backend.app.core.config import MAX_ACCESS_TOKEN_TTL, VARIANT_GOOGLE
from profilegate_backend.app.core.errors import (
    AuthError,
    ErrorKind,
    ProviderError,
    from_provider,
    invalid_credentials,
    missing_context,
    unauthenticated,
)
from profilegate_backend.app.core.trace import auth_trace, mask
from profilegate_backend.app.providers.base import ExternalIdentity, IdentityProvider, ProviderSession
from profilegate_backend.app.services.identity import IdentityMapper
from profilegate_backend.app.services.profiles import ProfileReconciler, ProfileView
from profilegate_backend.app.services.provider_config import ProviderConfigCache

log = logging.getLogger(__name__)

GOOGLE_METHOD = "google"
EMAIL_METHOD  = "email"


def _is_outage(err: ProviderError) -> bool:
    # no status means the provider was unreachable
    return err.status is None or err.status >= 500


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    refresh_expires_in: int
    token_type: str = "bearer"

    def public(self) -> Dict[str, Any]:
        """Client-facing shape; the refresh token travels only in its cookie."""
        return {
            "accessToken": self.access_token,
            "expiresIn": self.expires_in,
            "refreshExpiresIn": self.refresh_expires_in,
            "tokenType": self.token_type,
        }


@dataclass(frozen=True)
class AuthResult:
    user: Optional[Dict[str, Any]]
    session: Optional[SessionTokens]
    profile_complete: bool
    is_new_user: bool = False

    def public(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "session": self.session.public() if self.session else None,
            "profileComplete": self.profile_complete,
            "isNewUser": self.is_new_user,
        }


@dataclass(frozen=True)
class CallerContext:
    """Verified caller plus the access token it presented."""
    identity: Optional[ExternalIdentity]
    access_token: Optional[str] = None

    @property
    def user_id(self) -> str:
        if self.identity is None or not self.identity.id:
            return ""
        return self.identity.id.strip()


class SessionManager:
    def __init__(
        self,
        provider: IdentityProvider,
        reconciler: ProfileReconciler,
        mapper: IdentityMapper,
        config_cache: ProviderConfigCache,
        *,
        variant: str = VARIANT_GOOGLE,
    ):
        self.provider = provider
        self.reconciler = reconciler
        self.mapper = mapper
        self.config_cache = config_cache
        self.variant = variant
        self.verifier = SessionVerifier(provider)

    @property
    def federated(self) -> bool:
        return self.variant == VARIANT_GOOGLE

    @property
    def method(self) -> str:
        return GOOGLE_METHOD if self.federated else EMAIL_METHOD

    # ------------------------
    # Lifetime ceilings
    # ------------------------
    @staticmethod
    def _reject_oversized(expires_in: Optional[int]) -> None:
        # client-supplied lifetimes only; provider-reported ones are capped
        if expires_in is not None and expires_in > MAX_ACCESS_TOKEN_TTL:
            raise AuthError(ErrorKind.BAD_REQUEST, "Access token lifetime exceeds supported maximum")

    def _cap(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: Optional[int],
        token_type: Optional[str],
    ) -> SessionTokens:
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.config_cache.access_ttl_cap(expires_in),
            refresh_expires_in=self.config_cache.refresh_ttl(),
            token_type=token_type or "bearer",
        )

    def _cap_session(self, session: ProviderSession, fallback_refresh: Optional[str] = None) -> SessionTokens:
        return self._cap(
            session.access_token,
            session.refresh_token or fallback_refresh,
            session.expires_in,
            session.token_type,
        )

    # ------------------------
    # Federated exchange
    # ------------------------
    async def exchange_google_session(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        token_type: Optional[str] = None,
    ) -> AuthResult:
        await self.config_cache.ensure(GOOGLE_METHOD)
        self._reject_oversized(expires_in)
        tokens = self._cap(access_token, refresh_token, expires_in, token_type)

        identity = await self.verifier.verify(access_token)
        self.mapper.expect_federated(identity)

        payload = self.mapper.map(identity)
        result = await self.reconciler.reconcile(payload)
        view = self.reconciler.view(result.profile)

        auth_trace("session.exchange.ok", user=payload.external_id, new=result.is_new_user)
        return AuthResult(view.user, tokens, view.profile_complete, result.is_new_user)

    # ------------------------
    # Password flows
    # ------------------------
    async def register(self, email: str, password: str, metadata: Optional[Mapping[str, Any]] = None) -> AuthResult:
        await self.config_cache.ensure(EMAIL_METHOD)

        try:
            response = await self.provider.sign_up(email, password, dict(metadata or {}))
        except ProviderError as ex:
            auth_trace("session.register.rejected", status=ex.status)
            if _is_outage(ex) or ex.status in (400, 409, 422):
                raise from_provider(ex, fallback=ErrorKind.PROVIDER_UNAVAILABLE) from ex
            raise unauthenticated(ex.message) from ex

        identity = response.user or (response.session.user if response.session else None)
        if identity is None:
            raise unauthenticated("Registration did not return a user")

        payload = self.mapper.map(identity)
        result = await self.reconciler.reconcile(payload)
        view = self.reconciler.view(result.profile)

        tokens = self._cap_session(response.session) if response.session else None
        auth_trace("session.register.ok", user=payload.external_id, pending=tokens is None)
        return AuthResult(view.user, tokens, view.profile_complete, result.is_new_user)

    async def login(self, email: str, password: str) -> AuthResult:
        await self.config_cache.ensure(EMAIL_METHOD)

        try:
            response = await self.provider.sign_in_with_password(email, password)
        except ProviderError as ex:
            auth_trace("session.login.rejected", status=ex.status)
            if _is_outage(ex):
                raise from_provider(ex, fallback=ErrorKind.PROVIDER_UNAVAILABLE) from ex
            raise invalid_credentials() from ex

        if response.session is None:
            raise invalid_credentials()
        identity = response.user or response.session.user
        if identity is None:
            raise invalid_credentials()

        payload = self.mapper.map(identity)
        result = await self.reconciler.reconcile(payload)
        view = self.reconciler.view(result.profile)

        auth_trace("session.login.ok", user=payload.external_id, new=result.is_new_user)
        return AuthResult(view.user, self._cap_session(response.session), view.profile_complete, result.is_new_user)

    # ------------------------
    # Refresh
    # ------------------------
    async def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            raise unauthenticated("Refresh token missing")

        await self.config_cache.ensure(self.method)

        try:
            session = await self.provider.refresh_session(refresh_token.strip())
        except ProviderError as ex:
            auth_trace("session.refresh.rejected", token=mask(refresh_token), status=ex.status)
            raise unauthenticated("Invalid or expired refresh token") from ex

        identity = session.user
        if not session.access_token or identity is None:
            raise unauthenticated("Invalid or expired refresh token")

        tokens = self._cap_session(session, fallback_refresh=refresh_token.strip())
        if self.federated:
            self.mapper.expect_federated(identity)

        now = datetime.now(timezone.utc)
        payload = self.mapper.map(identity.model_copy(update={"last_sign_in_at": now.isoformat()}), now=now)
        result = await self.reconciler.refresh(payload)
        view = self.reconciler.view(result.profile)

        auth_trace("session.refresh.ok", user=payload.external_id)
        return AuthResult(view.user, tokens, view.profile_complete, False)

    # ------------------------
    # Logout
    # ------------------------
    async def logout(self, context: Optional[CallerContext]) -> None:
        user_id = context.user_id if context else ""
        if not user_id:
            raise missing_context()

        try:
            await self.provider.admin_sign_out(user_id)
        except ProviderError as ex:
            raise from_provider(ex) from ex

        token = (context.access_token or "").strip()
        if token:
            # best effort: the admin sign-out above already revoked the sessions
            try:
                await self.provider.sign_out(token)
            except ProviderError as ex:
                log.warning("client sign-out failed for %s: %s", user_id, ex.message)
        auth_trace("session.logout.ok", user=user_id, client_signout=bool(token))

    # ------------------------
    # Profile
    # ------------------------
    async def get_profile(self, context: Optional[CallerContext]) -> ProfileView:
        user_id = context.user_id if context else ""
        if not user_id:
            raise missing_context()
        profile = await self.reconciler.get(user_id)
        return self.reconciler.view(profile)

    async def update_profile(self, context: Optional[CallerContext], attributes: Optional[Mapping[str, Any]]) -> ProfileView:
        identity = context.identity if context else None
        profile = await self.reconciler.update_profile(identity, attributes)
        return self.reconciler.view(profile)
