# src/profilegate_backend/app/auth/verifier.py
from __future__ import annotations

import logging
from typing import Optional

from profilegate_backend.app.core.errors import ProviderError, unauthenticated
from profilegate_backend.app.core.trace import auth_trace, mask
from profilegate_backend.app.providers.base import ExternalIdentity, IdentityProvider

log = logging.getLogger(__name__)


class SessionVerifier:
    """
    Validates an access token with the identity provider on every call;
    token validity is never cached locally.
    """

    def __init__(self, provider: IdentityProvider):
        self.provider = provider

    async def verify(self, token: Optional[str]) -> ExternalIdentity:
        if not token or not token.strip():
            auth_trace("verify.missing")
            raise unauthenticated("Access token missing")

        try:
            user = await self.provider.get_user(token)
        except ProviderError as ex:
            auth_trace("verify.rejected", token=mask(token), status=ex.status)
            raise unauthenticated("Invalid or expired access token") from ex

        if user is None or not user.id:
            auth_trace("verify.no_user", token=mask(token))
            raise unauthenticated("Invalid or expired access token")

        auth_trace("verify.ok", user=user.id)
        return user
