# src/profilegate_backend/app/providers/gotrue.py
"""
httpx client for a GoTrue (Supabase Auth) server.

All calls go to ``{SUPABASE_URL}/auth/v1``. The service-role key is sent as
``apikey`` on every request and as the bearer for admin routes; user-scoped
routes (``/user``, ``/logout``) carry the caller's access token instead.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from profilegate_backend.app.core.errors import ProviderError
from profilegate_backend.app.core.trace import auth_trace
from profilegate_backend.app.providers.base import (
    AuthResponse,
    AuthSettings,
    ExternalIdentity,
    IdentityProvider,
    ProviderSession,
)

log = logging.getLogger(__name__)

# Admin session revocation route; GoTrue forks expose it under the admin user resource.
ADMIN_SIGN_OUT_PATH = "/admin/users/{user_id}/logout"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class GoTrueClient(IdentityProvider):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url or not api_key:
            raise ValueError("Supabase credentials are not configured")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    # ------------------------
    # Plumbing
    # ------------------------
    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.api_key}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.request(method, url, headers=self._headers(bearer), params=params, json=json)
        except httpx.HTTPError as ex:
            auth_trace("gotrue.transport_error", method=method, path=path, err=type(ex).__name__)
            raise ProviderError(None, f"Identity provider unreachable: {ex}") from ex

        if resp.status_code >= 400:
            message = _error_message(resp)
            auth_trace("gotrue.error", method=method, path=path, status=resp.status_code)
            raise ProviderError(resp.status_code, message)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _auth_response(body: Dict[str, Any]) -> AuthResponse:
        if body.get("access_token"):
            session = ProviderSession.model_validate(body)
            return AuthResponse(user=session.user, session=session)
        # email confirmation pending: GoTrue returns the bare user (or {"user": ...})
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        return AuthResponse(user=ExternalIdentity.model_validate(user) if user.get("id") else None)

    # ------------------------
    # IdentityProvider
    # ------------------------
    async def get_user(self, access_token: str) -> Optional[ExternalIdentity]:
        body = await self._request("GET", "/user", bearer=access_token)
        if not body:
            return None
        return ExternalIdentity.model_validate(body)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        body = await self._request(
            "POST", "/token", params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._auth_response(body or {})

    async def sign_up(self, email: str, password: str, claims: Optional[Dict[str, Any]] = None) -> AuthResponse:
        body = await self._request(
            "POST", "/signup",
            json={"email": email, "password": password, "data": claims or {}},
        )
        return self._auth_response(body or {})

    async def refresh_session(self, refresh_token: str) -> ProviderSession:
        body = await self._request(
            "POST", "/token", params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        if not body or not body.get("access_token"):
            raise ProviderError(401, "Refresh returned no session")
        return ProviderSession.model_validate(body)

    async def admin_sign_out(self, external_id: str) -> None:
        await self._request("POST", ADMIN_SIGN_OUT_PATH.format(user_id=external_id))

    async def admin_update_claims(self, external_id: str, claims: Dict[str, Any]) -> Optional[ExternalIdentity]:
        body = await self._request("PUT", f"/admin/users/{external_id}", json={"user_metadata": claims})
        return ExternalIdentity.model_validate(body) if body else None

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/logout", bearer=access_token, params={"scope": "local"})

    async def get_settings(self) -> AuthSettings:
        body = await self._request("GET", "/settings")
        return AuthSettings.from_payload(body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
