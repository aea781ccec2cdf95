# src/profilegate_backend/app/db/repository.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from profilegate_backend.app.core.errors import internal, profile_not_found
from profilegate_backend.app.db.models import Profile

log = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ProfileRepository:
    """
    Datastore contract used by the reconciler:
      find_by_external_id / upsert / update, one profile row per call.
    Each call runs in its own short session and commits before returning.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    async def _load(db: AsyncSession, external_id: str) -> Optional[Profile]:
        result = await db.execute(select(Profile).where(Profile.external_id == external_id))
        return result.scalar_one_or_none()

    async def find_by_external_id(self, external_id: str) -> Optional[Profile]:
        try:
            async with self.session_factory() as db:
                return await self._load(db, external_id)
        except SQLAlchemyError as ex:
            log.exception("profile lookup failed for %s", external_id)
            raise internal("Profile storage failure") from ex

    async def upsert(self, external_id: str, create: Dict[str, Any], update_fields: Dict[str, Any]) -> Profile:
        """
        Insert the row or, when external_id already exists, apply only update_fields.
        external_id itself is never part of the update set.
        """
        values = {**create, "external_id": external_id}
        set_ = {k: v for k, v in update_fields.items() if k != "external_id"}
        set_["updated_at"] = func.now()

        try:
            async with self.session_factory() as db:
                dialect = db.get_bind().dialect.name
                insert = _INSERTS.get(dialect)
                if insert is None:
                    raise internal(f"Unsupported database dialect for upsert: {dialect}")

                stmt = insert(Profile).values(**values).on_conflict_do_update(
                    index_elements=[Profile.external_id],
                    set_=set_,
                )
                await db.execute(stmt)
                await db.commit()
                profile = await self._load(db, external_id)
        except SQLAlchemyError as ex:
            log.exception("profile upsert failed for %s", external_id)
            raise internal("Profile storage failure") from ex

        if profile is None:
            raise internal("Profile storage failure")
        return profile

    async def update(self, external_id: str, fields: Dict[str, Any]) -> Profile:
        values = {k: v for k, v in fields.items() if k != "external_id"}
        values["updated_at"] = func.now()

        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    update(Profile)
                    .where(Profile.external_id == external_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await db.rollback()
                    raise profile_not_found()
                await db.commit()
                profile = await self._load(db, external_id)
        except SQLAlchemyError as ex:
            log.exception("profile update failed for %s", external_id)
            raise internal("Profile storage failure") from ex

        if profile is None:
            raise profile_not_found()
        return profile
