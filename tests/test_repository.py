from datetime import date, datetime, timezone

import pytest

from profilegate_backend.app.core.errors import AuthError, ErrorKind

NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def _identity(**overrides):
    values = dict(
        email="jo@example.com",
        google_sub="google-u1",
        full_name="Jo",
        avatar_url=None,
        country_code=None,
        last_login_at=NOW,
    )
    values.update(overrides)
    return values


async def test_find_missing_returns_none(repository):
    assert await repository.find_by_external_id("nobody") is None


async def test_upsert_creates_then_updates_identity_fields_only(repository):
    created = await repository.upsert("u1", {**_identity(), "gender": "FEMALE"}, _identity())
    assert created.external_id == "u1"
    assert created.full_name == "Jo"
    assert created.gender == "FEMALE"
    assert created.id is not None

    updated = await repository.upsert(
        "u1",
        {**_identity(full_name="Jo Bloggs"), "gender": "MALE"},
        _identity(full_name="Jo Bloggs"),
    )
    assert updated.id == created.id
    assert updated.full_name == "Jo Bloggs"
    # extended attributes are not part of the update set
    assert updated.gender == "FEMALE"


async def test_upsert_never_rewrites_external_id(repository):
    await repository.upsert("u1", _identity(), _identity())
    profile = await repository.upsert("u1", _identity(), {**_identity(), "external_id": "hijack"})
    assert profile.external_id == "u1"
    assert await repository.find_by_external_id("hijack") is None


async def test_update_existing(repository):
    await repository.upsert("u1", _identity(), _identity())
    profile = await repository.update("u1", {"dob": date(1994, 3, 12), "height_feet": 5})
    assert profile.dob == date(1994, 3, 12)
    assert profile.height_feet == 5
    assert profile.full_name == "Jo"


async def test_update_missing_profile_raises_not_found(repository):
    with pytest.raises(AuthError) as exc:
        await repository.update("ghost", {"full_name": "x"})
    assert exc.value.kind is ErrorKind.PROFILE_NOT_FOUND
    assert await repository.find_by_external_id("ghost") is None


async def test_storage_failure_maps_to_internal(repository):
    # email is NOT NULL
    with pytest.raises(AuthError) as exc:
        await repository.upsert("u2", {"email": None}, {"email": None})
    assert exc.value.kind is ErrorKind.INTERNAL
    assert exc.value.message == "Profile storage failure"
