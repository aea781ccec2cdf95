# Maps IdP claims -> fields of the local profile row.
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from profilegate_backend.app.core.errors import incomplete_identity, unauthenticated
from profilegate_backend.app.db.models import IDENTITY_COLUMNS
from profilegate_backend.app.providers.base import ExternalIdentity

GOOGLE = "google"

# claim name (as sent by clients / stored in user_metadata) -> profile column
EXTENDED_CLAIMS: Dict[str, str] = {
    "gender":        "gender",
    "dob":           "dob",
    "heightFeet":    "height_feet",
    "heightInches":  "height_inches",
    "religion":      "religion",
    "caste":         "caste",
    "rashi":         "rashi",
    "education":     "education",
    "occupation":    "occupation",
    "annualIncome":  "annual_income",
    "maritalStatus": "marital_status",
    "homeAddress":   "home_address",
    "expectation":   "expectation",
    "city":          "city",
    "pincode":       "pincode",
    "state":         "state",
    "contactNumber": "contact_number",
}

_INT_COLUMNS = {"height_feet", "height_inches", "annual_income", "pincode"}

AVATAR_KEYS  = ("avatar_url", "picture")
COUNTRY_KEYS = ("locale", "country")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _first(metadata: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = _text(metadata.get(key))
        if value:
            return value
    return None


# ------------------------
# Full name precedence
# ------------------------
def _given(m: Mapping[str, Any]) -> Optional[str]:
    return _first(m, ("given_name", "first_name"))

def _family(m: Mapping[str, Any]) -> Optional[str]:
    return _first(m, ("family_name", "last_name"))

def _explicit_full_name(m: Mapping[str, Any]) -> Optional[str]:
    return _text(m.get("full_name"))

def _explicit_name(m: Mapping[str, Any]) -> Optional[str]:
    return _text(m.get("name"))

def _given_and_family(m: Mapping[str, Any]) -> Optional[str]:
    given, family = _given(m), _family(m)
    if given and family:
        return f"{given} {family}"
    return None

FULL_NAME_EXTRACTORS: Sequence[Callable[[Mapping[str, Any]], Optional[str]]] = (
    _explicit_full_name,
    _explicit_name,
    _given_and_family,
    _given,
    _family,
)

def derive_full_name(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    """First extractor in FULL_NAME_EXTRACTORS that yields a value wins."""
    metadata = metadata or {}
    for extract in FULL_NAME_EXTRACTORS:
        name = extract(metadata)
        if name:
            return name
    return None


# ------------------------
# Value coercion
# ------------------------
def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            parsed = parse_timestamp(text)
            return parsed.date() if parsed else None
    return None


def _coerce(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "dob":
        return parse_date(value)
    if column in _INT_COLUMNS:
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return _text(value)


def extended_from_claims(claims: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Known extended claims -> {column: coerced value}; unknown keys and empty values dropped."""
    out: Dict[str, Any] = {}
    for claim, column in EXTENDED_CLAIMS.items():
        if claims is None or claim not in claims:
            continue
        value = _coerce(column, claims[claim])
        if value is not None:
            out[column] = value
    return out


# ------------------------
# Payload
# ------------------------
class PersistencePayload(BaseModel):
    external_id: str
    email: str
    google_sub: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    country_code: Optional[str] = None
    last_login_at: datetime
    extended: Dict[str, Any] = Field(default_factory=dict)

    def identity_fields(self) -> Dict[str, Any]:
        """Fields refreshed on every login/refresh."""
        return {col: getattr(self, col) for col in IDENTITY_COLUMNS}

    def create_fields(self) -> Dict[str, Any]:
        """Fields written when the profile row is first created."""
        return {**self.extended, **self.identity_fields()}


class IdentityMapper:
    """
    Converts an ExternalIdentity into a PersistencePayload.

    require_subject=True is the federated variant: a provider subject id must
    be derivable, first from the linked identity of `expected_provider`, then
    from app_metadata.provider_id, then from user_metadata.sub.
    """

    def __init__(self, *, require_subject: bool = False, expected_provider: str = GOOGLE):
        self.require_subject = require_subject
        self.expected_provider = expected_provider

    def expect_federated(self, identity: ExternalIdentity) -> None:
        if identity.provider != self.expected_provider:
            raise unauthenticated("Only Google sign-ins are supported")
        if identity.linked(self.expected_provider) is None:
            raise unauthenticated("Google identity is not linked to this user")

    def subject(self, identity: ExternalIdentity) -> Optional[str]:
        linked = identity.linked(self.expected_provider)
        candidates = (
            linked.identity_data.get("sub") if linked else None,
            identity.app_metadata.get("provider_id"),
            identity.user_metadata.get("sub"),
        )
        for value in candidates:
            value = _text(value)
            if value:
                return value
        return None

    def map(self, identity: ExternalIdentity, *, now: Optional[datetime] = None) -> PersistencePayload:
        if not _text(identity.id) or not _text(identity.email):
            raise incomplete_identity("Identity payload incomplete")

        google_sub = self.subject(identity)
        if self.require_subject and not google_sub:
            raise incomplete_identity("Google identity is missing a subject identifier")

        metadata = identity.user_metadata or {}
        last_login = parse_timestamp(identity.last_sign_in_at) or now or datetime.now(timezone.utc)

        return PersistencePayload(
            external_id=identity.id.strip(),
            email=identity.email.strip(),
            google_sub=google_sub,
            full_name=derive_full_name(metadata),
            avatar_url=_first(metadata, AVATAR_KEYS),
            country_code=_first(metadata, COUNTRY_KEYS),
            last_login_at=last_login,
            extended=extended_from_claims(metadata),
        )
