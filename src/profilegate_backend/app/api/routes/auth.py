# src/profilegate_backend/app/api/routes/auth.py
"""
/api/auth routes.

Two route tables share logout and me:
  google_router    POST /google/session, POST /google/session/refresh
  password_router  POST /register, POST /login, POST /refresh, PATCH /profile
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request

from profilegate_backend.app.api import responses
from profilegate_backend.app.api.cookies import apply_session_cookies, clear_session_cookies
from profilegate_backend.app.auth.deps import app_settings, get_session_manager, rate_limited, require_caller
from profilegate_backend.app.auth.tokens import get_refresh_token
from profilegate_backend.app.core.config import Settings
from profilegate_backend.app.core.trace import auth_trace
from profilegate_backend.app.schemas.auth import (
    EmptyBody,
    GoogleSessionBody,
    LoginBody,
    ProfileUpdateBody,
    RefreshBody,
    RegisterBody,
)
from profilegate_backend.app.services.sessions import AuthResult, CallerContext, SessionManager

PREFIX = "/api/auth"


def _session_response(result: AuthResult, message: str, settings: Settings, status_code: int = 200):
    resp = responses.success(result.public(), message, status_code=status_code)
    return apply_session_cookies(resp, result.session, settings)


async def _refresh(
    request: Request,
    body: Optional[RefreshBody],
    manager: SessionManager,
    settings: Settings,
):
    token = get_refresh_token(body.refreshToken if body else None, request.cookies)
    result = await manager.refresh(token)
    return _session_response(result, "Session refreshed", settings)


# ------------------------
# Shared
# ------------------------
common_router = APIRouter(prefix=PREFIX, tags=["auth"])


@common_router.post("/logout")
async def logout(
    body: Optional[EmptyBody] = Body(None),
    caller: CallerContext = Depends(require_caller()),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    await manager.logout(caller)
    return clear_session_cookies(responses.success(None, "Logged out"), settings)


@common_router.get("/me")
async def me(
    caller: CallerContext = Depends(require_caller()),
    manager: SessionManager = Depends(get_session_manager),
):
    view = await manager.get_profile(caller)
    return responses.success({"user": view.user, "profileComplete": view.profile_complete}, "Profile retrieved")


# ------------------------
# Google session exchange
# ------------------------
google_router = APIRouter(prefix=PREFIX, tags=["auth"])


@google_router.post("/google/session", dependencies=[Depends(rate_limited)])
async def exchange_google_session(
    body: GoogleSessionBody,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    result = await manager.exchange_google_session(
        access_token=body.accessToken,
        refresh_token=body.refreshToken,
        expires_in=body.expiresIn,
        token_type=body.tokenType,
    )
    if result.is_new_user:
        return _session_response(result, "Registered with Google", settings, status_code=201)
    return _session_response(result, "Authenticated with Google", settings)


@google_router.post("/google/session/refresh", dependencies=[Depends(rate_limited)])
async def refresh_google_session(
    request: Request,
    body: Optional[RefreshBody] = Body(None),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    return await _refresh(request, body, manager, settings)


# ------------------------
# Email / password
# ------------------------
password_router = APIRouter(prefix=PREFIX, tags=["auth"])


@password_router.post("/register", dependencies=[Depends(rate_limited)])
async def register(
    body: RegisterBody,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    result = await manager.register(body.email, body.password, body.metadata.claims())
    message = "Registered" if result.session else "Registered. Verification pending"
    auth_trace("route.register", pending=result.session is None)
    return _session_response(result, message, settings, status_code=201)


@password_router.post("/login", dependencies=[Depends(rate_limited)])
async def login(
    body: LoginBody,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    result = await manager.login(body.email, body.password)
    return _session_response(result, "Logged in", settings)


@password_router.post("/refresh", dependencies=[Depends(rate_limited)])
async def refresh_session(
    request: Request,
    body: Optional[RefreshBody] = Body(None),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(app_settings),
):
    return await _refresh(request, body, manager, settings)


@password_router.patch("/profile")
async def update_profile(
    body: ProfileUpdateBody,
    caller: CallerContext = Depends(require_caller()),
    manager: SessionManager = Depends(get_session_manager),
):
    view = await manager.update_profile(caller, body.claims())
    return responses.success({"user": view.user, "profileComplete": view.profile_complete}, "Profile updated")
