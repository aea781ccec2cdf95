# src/profilegate_backend/app/auth/tokens.py
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from profilegate_backend.app.core.config import ACCESS_COOKIE_NAME, REFRESH_COOKIE_NAME

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE | re.DOTALL)


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def extract_bearer_token(authorization: Any = "") -> Optional[str]:
    """'Bearer <token>' (any case) -> '<token>', trimmed. Anything else -> None."""
    if not isinstance(authorization, str):
        return None
    match = _BEARER_RE.match(authorization.strip())
    if not match:
        return None
    return _clean(match.group(1))


def get_access_token(authorization: Any, cookies: Optional[Mapping[str, str]]) -> Optional[str]:
    """Header first, then the access-token cookie."""
    token = extract_bearer_token(authorization)
    if token:
        return token
    return _clean((cookies or {}).get(ACCESS_COOKIE_NAME))


def get_refresh_token(body_value: Any, cookies: Optional[Mapping[str, str]]) -> Optional[str]:
    """A non-empty body value wins over the refresh-token cookie."""
    return _clean(body_value) or _clean((cookies or {}).get(REFRESH_COOKIE_NAME))
