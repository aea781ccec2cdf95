# src/profilegate_backend/app/core/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

# Load .env before anything reads environment variables
load_dotenv()

log = logging.getLogger(__name__)

# ------------------------
# Hard token lifetime ceilings (seconds)
# ------------------------
MAX_ACCESS_TOKEN_TTL  = 5 * 60 * 60          # 5h
MAX_REFRESH_TOKEN_TTL = 30 * 24 * 60 * 60    # 30d

# ------------------------
# Cookie names (kept compatible with existing web clients)
# ------------------------
ACCESS_COOKIE_NAME  = "sb-access-token"
REFRESH_COOKIE_NAME = "sb-refresh-token"
COOKIE_PATH         = "/api"

VARIANT_GOOGLE   = "google"
VARIANT_PASSWORD = "password"
_VARIANTS = (VARIANT_GOOGLE, VARIANT_PASSWORD)


def _flag(var: str, default: str = "") -> bool:
    return (os.getenv(var, default) or "").strip().lower() in ("1", "true", "yes", "on")

def _parse_csv(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    auth_variant: str = VARIANT_GOOGLE
    supabase_url: str = ""
    supabase_key: str = ""
    database_url: str = "sqlite+aiosqlite:///./profilegate.db"
    db_echo: bool = False
    app_env: str = "development"
    port: int = 3000
    cors_origins: List[str] = field(default_factory=list)
    provider_timeout: float = 10.0
    rate_limit_max: int = 20
    rate_limit_window: int = 15 * 60
    trust_proxy: bool = False

    @property
    def secure_cookies(self) -> bool:
        return self.app_env == "production"

    @property
    def auth_base_url(self) -> str:
        return self.supabase_url.rstrip("/") + "/auth/v1"

    def missing(self) -> List[str]:
        out = []
        if not self.supabase_url:
            out.append("SUPABASE_URL")
        if not self.supabase_key:
            out.append("SUPABASE_SERVICE_ROLE_KEY/SUPABASE_KEY")
        if not os.getenv("DATABASE_URL"):
            out.append("DATABASE_URL")
        return out

    @classmethod
    def from_env(cls) -> "Settings":
        variant = (os.getenv("AUTH_VARIANT", VARIANT_GOOGLE) or "").strip().lower()
        if variant not in _VARIANTS:
            raise ValueError(f"Unsupported AUTH_VARIANT: {variant!r} (expected one of {_VARIANTS})")

        return cls(
            auth_variant=variant,
            supabase_url=(os.getenv("SUPABASE_URL") or "").strip(),
            # service role key preferred; anon key only works for the non-admin calls
            supabase_key=(os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY") or "").strip(),
            database_url=(os.getenv("DATABASE_URL") or cls.database_url).strip(),
            db_echo=_flag("DB_ECHO"),
            app_env=(os.getenv("APP_ENV", "development") or "").strip().lower(),
            port=int(os.getenv("PORT", "3000")),
            cors_origins=_parse_csv(os.getenv("CORS_ORIGINS") or os.getenv("ALLOWED_ORIGINS") or ""),
            provider_timeout=float(os.getenv("PROVIDER_TIMEOUT_SEC", "10")),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", "20")),
            rate_limit_window=int(os.getenv("RATE_LIMIT_WINDOW_SEC", str(15 * 60))),
            trust_proxy=_flag("TRUST_PROXY"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings.from_env()
    missing = settings.missing()
    if missing:
        log.warning(
            "Missing environment variables: %s. Provider and database connectivity may fail.",
            ", ".join(missing),
        )
    return settings


def normalize_database_url(url: Optional[str]) -> str:
    """Map sync driver URLs onto their async drivers (postgres:// -> postgresql+asyncpg://)."""
    url = (url or "").strip()
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        url = url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url
