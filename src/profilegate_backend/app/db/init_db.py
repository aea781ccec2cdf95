import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from profilegate_backend.app.db.session import Base, get_engine
from profilegate_backend.app.db import models  # noqa: F401  ensure model classes are registered


async def init_models(engine: Optional[AsyncEngine] = None) -> None:
    """
    Creates all tables defined in SQLAlchemy models.
    Safe to run multiple times due to CREATE IF NOT EXISTS behavior.
    """
    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Allows:
#   python -m profilegate_backend.app.db.init_db
if __name__ == "__main__":
    asyncio.run(init_models())
