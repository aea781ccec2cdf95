# src/profilegate_backend/app/services/profiles.py
"""
Profile reconciliation: keeps the local profile row in step with the
provider's view of the user and derives "profile complete" on every read.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Mapping, Optional

from profilegate_backend.app.core.errors import (
    ProviderError,
    from_provider,
    missing_context,
    no_changes,
    profile_not_found,
)
from profilegate_backend.app.core.trace import auth_trace
from profilegate_backend.app.db.models import EXTENDED_COLUMNS, Profile
from profilegate_backend.app.db.repository import ProfileRepository
from profilegate_backend.app.providers.base import ExternalIdentity, IdentityProvider
from profilegate_backend.app.services.identity import (
    EXTENDED_CLAIMS,
    PersistencePayload,
    derive_full_name,
    extended_from_claims,
    parse_date,
)

log = logging.getLogger(__name__)

HEIGHT_FEET_RANGE   = (0, 8)
HEIGHT_INCHES_RANGE = (0, 11)


# ------------------------
# Completeness predicates
# ------------------------
def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())

def _in_range(value: Any, bounds: tuple) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and bounds[0] <= value <= bounds[1]

def _height_ok(feet: Any, inches: Any) -> bool:
    if feet is None and inches is None:
        return False
    if feet is not None and not _in_range(feet, HEIGHT_FEET_RANGE):
        return False
    if inches is not None and not _in_range(inches, HEIGHT_INCHES_RANGE):
        return False
    return (feet or 0) != 0 or (inches or 0) != 0


def federated_profile_complete(profile: Optional[Profile]) -> bool:
    return profile is not None and _has_text(profile.full_name)


def password_profile_complete(profile: Optional[Profile]) -> bool:
    if profile is None:
        return False
    return (
        _has_text(profile.full_name)
        and _has_text(profile.gender)
        and parse_date(profile.dob) is not None
        and _height_ok(profile.height_feet, profile.height_inches)
        and _has_text(profile.religion)
        and _has_text(profile.caste)
        and _has_text(profile.rashi)
    )


CompletenessRule = Callable[[Optional[Profile]], bool]


# ------------------------
# Presentation
# ------------------------
_CAMEL = {column: claim for claim, column in EXTENDED_CLAIMS.items()}

def present_profile(profile: Optional[Profile], *, include_extended: bool = False) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    out: Dict[str, Any] = {
        "id": str(profile.id),
        "email": profile.email,
        "fullName": profile.full_name,
        "avatarUrl": profile.avatar_url,
        "countryCode": profile.country_code,
        "lastLoginAt": profile.last_login_at,
    }
    if include_extended:
        for column in EXTENDED_COLUMNS:
            out[_CAMEL[column]] = getattr(profile, column)
    return out


@dataclass(frozen=True)
class ReconcileResult:
    profile: Profile
    is_new_user: bool


@dataclass(frozen=True)
class ProfileView:
    user: Optional[Dict[str, Any]]
    profile_complete: bool


# ------------------------
# Reconciler
# ------------------------
def sanitize_attributes(attributes: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Keep known profile claims with a usable value; dates become ISO strings."""
    out: Dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if key != "name" and key not in EXTENDED_CLAIMS:
            continue
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[key] = value
    return out


class ProfileReconciler:
    def __init__(
        self,
        repository: ProfileRepository,
        provider: IdentityProvider,
        *,
        completeness: CompletenessRule = federated_profile_complete,
        include_extended: bool = False,
    ):
        self.repository = repository
        self.provider = provider
        self.completeness = completeness
        self.include_extended = include_extended

    def view(self, profile: Optional[Profile]) -> ProfileView:
        return ProfileView(
            user=present_profile(profile, include_extended=self.include_extended),
            profile_complete=bool(self.completeness(profile)),
        )

    async def reconcile(self, payload: PersistencePayload) -> ReconcileResult:
        # pre-fetch: an upsert cannot tell us which branch fired
        existing = await self.repository.find_by_external_id(payload.external_id)
        profile = await self.repository.upsert(
            payload.external_id,
            payload.create_fields(),
            payload.identity_fields(),
        )
        auth_trace("profile.reconciled", user=payload.external_id, new=existing is None)
        return ReconcileResult(profile=profile, is_new_user=existing is None)

    async def refresh(self, payload: PersistencePayload) -> ReconcileResult:
        """Re-derive identity fields for an existing profile; never creates one."""
        existing = await self.repository.find_by_external_id(payload.external_id)
        if existing is None:
            auth_trace("profile.refresh.missing", user=payload.external_id)
            raise profile_not_found("User profile not found for refresh token")
        profile = await self.repository.update(payload.external_id, payload.identity_fields())
        return ReconcileResult(profile=profile, is_new_user=False)

    async def get(self, external_id: str) -> Profile:
        profile = await self.repository.find_by_external_id(external_id)
        if profile is None:
            raise profile_not_found()
        return profile

    async def update_profile(self, context: Optional[ExternalIdentity], attributes: Optional[Mapping[str, Any]]) -> Profile:
        if context is None or not context.id or not context.email:
            raise missing_context()

        changes = sanitize_attributes(attributes)
        if not changes:
            raise no_changes()

        merged = {**(context.user_metadata or {}), **changes}
        if "name" in changes and "full_name" in merged:
            # derive_full_name prefers full_name over name
            merged["full_name"] = changes["name"]
        try:
            await self.provider.admin_update_claims(context.id, merged)
        except ProviderError as ex:
            log.warning("provider claim update failed for %s: %s", context.id, ex.message)
            raise from_provider(ex) from ex

        fields = extended_from_claims(changes)
        if "name" in changes:
            fields["full_name"] = derive_full_name(merged)

        profile = await self.repository.update(context.id, fields)
        auth_trace("profile.updated", user=context.id, fields=",".join(sorted(fields)))
        return profile
