from datetime import date, datetime, timezone

import pytest

from conftest import google_user
from profilegate_backend.app.core.errors import AuthError, ErrorKind
from profilegate_backend.app.providers.base import ExternalIdentity, LinkedIdentity
from profilegate_backend.app.services.identity import (
    IdentityMapper,
    derive_full_name,
    extended_from_claims,
    parse_timestamp,
)


# ---------- full name precedence ----------
@pytest.mark.parametrize(
    "metadata,expected",
    [
        ({"full_name": "Full", "name": "Name", "given_name": "G", "family_name": "F"}, "Full"),
        ({"name": "Name", "given_name": "G", "family_name": "F"}, "Name"),
        ({"given_name": "Jo", "family_name": "Bloggs"}, "Jo Bloggs"),
        ({"first_name": "Jo", "last_name": "Bloggs"}, "Jo Bloggs"),
        ({"given_name": "Jo"}, "Jo"),
        ({"family_name": "Bloggs"}, "Bloggs"),
        ({"full_name": "   ", "name": "Name"}, "Name"),
        ({}, None),
    ],
)
def test_derive_full_name_precedence(metadata, expected):
    assert derive_full_name(metadata) == expected


def test_derive_full_name_handles_none():
    assert derive_full_name(None) is None


# ---------- mapping ----------
def test_map_google_identity():
    identity = google_user(
        "abc",
        "a@b.com",
        given_name="Jo",
        picture="https://img/jo.png",
        locale="en-GB",
    )
    payload = IdentityMapper(require_subject=True).map(identity)

    assert payload.external_id == "abc"
    assert payload.email == "a@b.com"
    assert payload.google_sub == "google-abc"
    assert payload.full_name == "Jo"
    assert payload.avatar_url == "https://img/jo.png"
    assert payload.country_code == "en-GB"
    assert payload.last_login_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert payload.extended == {}


def test_avatar_and_country_key_order():
    identity = google_user(avatar_url="https://a", picture="https://p", locale="", country="IN")
    payload = IdentityMapper().map(identity)
    assert payload.avatar_url == "https://a"
    assert payload.country_code == "IN"


def test_subject_falls_back_to_app_metadata_then_user_metadata():
    mapper = IdentityMapper(require_subject=True)

    via_app = ExternalIdentity(id="u", email="u@x.com", app_metadata={"provider": "google", "provider_id": "pid-1"})
    assert mapper.map(via_app).google_sub == "pid-1"

    via_user = ExternalIdentity(id="u", email="u@x.com", user_metadata={"sub": "sub-2"})
    assert mapper.map(via_user).google_sub == "sub-2"


def test_linked_identity_of_other_provider_is_ignored():
    identity = ExternalIdentity(
        id="u",
        email="u@x.com",
        identities=[LinkedIdentity(provider="github", identity_data={"sub": "gh-1"})],
    )
    assert IdentityMapper().subject(identity) is None


def test_missing_subject_rejected_when_required():
    identity = ExternalIdentity(id="u", email="u@x.com")
    with pytest.raises(AuthError) as exc:
        IdentityMapper(require_subject=True).map(identity)
    assert exc.value.kind is ErrorKind.INCOMPLETE_IDENTITY
    assert exc.value.message == "Google identity is missing a subject identifier"

    # password variant does not need a subject
    assert IdentityMapper().map(identity).google_sub is None


@pytest.mark.parametrize("uid,email", [(None, "a@b.com"), ("abc", None), ("  ", "a@b.com"), ("abc", "")])
def test_incomplete_identity(uid, email):
    with pytest.raises(AuthError) as exc:
        IdentityMapper().map(ExternalIdentity(id=uid, email=email))
    assert exc.value.kind is ErrorKind.INCOMPLETE_IDENTITY
    assert exc.value.message == "Identity payload incomplete"
    assert exc.value.status_code == 401


def test_last_login_defaults_to_now_when_unparsable():
    now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    identity = google_user(last_sign_in_at="not-a-date")
    assert IdentityMapper().map(identity, now=now).last_login_at == now


def test_extended_claims_are_coerced():
    identity = google_user(
        gender="FEMALE",
        dob="1994-03-12",
        heightFeet="5",
        heightInches=4,
        annualIncome=1200000,
        city="  Pune ",
        unknownKey="dropped",
        caste="",
    )
    payload = IdentityMapper().map(identity)
    assert payload.extended == {
        "gender": "FEMALE",
        "dob": date(1994, 3, 12),
        "height_feet": 5,
        "height_inches": 4,
        "annual_income": 1200000,
        "city": "Pune",
    }
    # extended attributes are only written when the row is created
    assert "gender" in payload.create_fields()
    assert "gender" not in payload.identity_fields()


def test_extended_from_claims_drops_bad_values():
    assert extended_from_claims({"heightFeet": "tall", "dob": "yesterday", "pincode": True}) == {}
    assert extended_from_claims(None) == {}


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2024-05-01T10:00:00").tzinfo is timezone.utc
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


# ---------- federated checks ----------
def test_expect_federated_accepts_google():
    IdentityMapper().expect_federated(google_user())


def test_expect_federated_rejects_other_provider():
    with pytest.raises(AuthError) as exc:
        IdentityMapper().expect_federated(google_user(provider="email"))
    assert exc.value.message == "Only Google sign-ins are supported"
    assert exc.value.kind is ErrorKind.UNAUTHENTICATED


def test_expect_federated_requires_linked_identity():
    with pytest.raises(AuthError) as exc:
        IdentityMapper().expect_federated(google_user(linked=False))
    assert exc.value.message == "Google identity is not linked to this user"
