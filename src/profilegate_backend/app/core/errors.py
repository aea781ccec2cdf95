# src/profilegate_backend/app/core/errors.py
"""
Error taxonomy for the auth core.

Services raise ``AuthError`` tagged with an ``ErrorKind``; the HTTP layer
translates the kind to a status code exactly once (see ``status_for``).
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    BAD_REQUEST          = "BAD_REQUEST"
    UNAUTHENTICATED      = "UNAUTHENTICATED"
    INVALID_CREDENTIALS  = "INVALID_CREDENTIALS"
    INCOMPLETE_IDENTITY  = "INCOMPLETE_IDENTITY"
    MISSING_CONTEXT      = "MISSING_CONTEXT"
    PROFILE_NOT_FOUND    = "PROFILE_NOT_FOUND"
    NO_CHANGES           = "NO_CHANGES"
    UNPROCESSABLE        = "UNPROCESSABLE"
    RATE_LIMITED         = "RATE_LIMITED"
    INTERNAL             = "INTERNAL"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    CONFIG_EXCEEDED      = "CONFIG_EXCEEDED"


_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST:          400,
    ErrorKind.UNAUTHENTICATED:      401,
    ErrorKind.INVALID_CREDENTIALS:  401,
    ErrorKind.INCOMPLETE_IDENTITY:  401,
    ErrorKind.MISSING_CONTEXT:      401,
    ErrorKind.PROFILE_NOT_FOUND:    404,
    ErrorKind.NO_CHANGES:           409,
    ErrorKind.UNPROCESSABLE:        422,
    ErrorKind.RATE_LIMITED:         429,
    ErrorKind.INTERNAL:             500,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.CONFIG_EXCEEDED:      503,
}


def status_for(kind: ErrorKind) -> int:
    return _STATUS[kind]


class AuthError(Exception):
    """Tagged error raised by the auth core."""

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    def __repr__(self) -> str:
        return f"AuthError({self.kind.value}, {self.message!r})"


class ProviderError(Exception):
    """Raised by identity provider clients; carries the upstream HTTP-style status."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message or "Identity provider request failed"
        super().__init__(self.message)


def from_provider(err: ProviderError, fallback: ErrorKind = ErrorKind.BAD_REQUEST) -> AuthError:
    """Translate a provider failure into the core taxonomy by status class."""
    status = err.status or 0
    if status in (401, 403):
        kind = ErrorKind.UNAUTHENTICATED
    elif status == 404:
        kind = ErrorKind.PROFILE_NOT_FOUND
    elif status == 422:
        kind = ErrorKind.UNPROCESSABLE
    elif status == 429:
        kind = ErrorKind.RATE_LIMITED
    elif status >= 500:
        kind = ErrorKind.PROVIDER_UNAVAILABLE
    elif 400 <= status < 500:
        kind = ErrorKind.BAD_REQUEST
    else:
        kind = fallback
    return AuthError(kind, err.message, {"provider_status": err.status})


# Convenience constructors, named after the failure they describe.
def unauthenticated(message: str) -> AuthError:
    return AuthError(ErrorKind.UNAUTHENTICATED, message)

def invalid_credentials(message: str = "Invalid email or password") -> AuthError:
    return AuthError(ErrorKind.INVALID_CREDENTIALS, message)

def incomplete_identity(message: str) -> AuthError:
    return AuthError(ErrorKind.INCOMPLETE_IDENTITY, message)

def missing_context(message: str = "User context missing") -> AuthError:
    return AuthError(ErrorKind.MISSING_CONTEXT, message)

def profile_not_found(message: str = "User profile not found") -> AuthError:
    return AuthError(ErrorKind.PROFILE_NOT_FOUND, message)

def no_changes(message: str = "No profile changes supplied") -> AuthError:
    return AuthError(ErrorKind.NO_CHANGES, message)

def provider_unavailable(message: str) -> AuthError:
    return AuthError(ErrorKind.PROVIDER_UNAVAILABLE, message)

def config_exceeded(message: str) -> AuthError:
    return AuthError(ErrorKind.CONFIG_EXCEEDED, message)

def internal(message: str = "Internal Server Error") -> AuthError:
    return AuthError(ErrorKind.INTERNAL, message)
