# src/profilegate_backend/app/api/cookies.py
"""
Session cookie helpers.

The access token never lives in a cookie set by this service: any stale
``sb-access-token`` is cleared on every auth response and clients keep the
access token in memory. The refresh token is HTTP-only, scoped to /api.
"""
from typing import Any, Dict, Optional

from fastapi import Response

from profilegate_backend.app.core.config import (
    ACCESS_COOKIE_NAME,
    COOKIE_PATH,
    REFRESH_COOKIE_NAME,
    Settings,
)


def cookie_options(settings: Settings) -> Dict[str, Any]:
    return {
        "path": COOKIE_PATH,
        "httponly": True,
        "secure": settings.secure_cookies,
        "samesite": "lax",
    }


def clear_cookie(response: Response, name: str, settings: Settings) -> None:
    response.set_cookie(name, "", max_age=0, expires=0, **cookie_options(settings))


def set_refresh_cookie(response: Response, refresh_token: Optional[str], max_age: int, settings: Settings) -> None:
    if not refresh_token:
        return
    response.set_cookie(REFRESH_COOKIE_NAME, refresh_token, max_age=max_age, **cookie_options(settings))


def apply_session_cookies(response: Response, session: Any, settings: Settings) -> Response:
    """Clear the access cookie and (re)issue the refresh cookie for a SessionTokens or None."""
    clear_cookie(response, ACCESS_COOKIE_NAME, settings)
    if session is not None:
        set_refresh_cookie(response, session.refresh_token, session.refresh_expires_in, settings)
    return response


def clear_session_cookies(response: Response, settings: Settings) -> Response:
    clear_cookie(response, ACCESS_COOKIE_NAME, settings)
    clear_cookie(response, REFRESH_COOKIE_NAME, settings)
    return response
