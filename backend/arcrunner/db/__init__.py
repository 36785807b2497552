"""
Database module for arcrunner.

Provides async SQLAlchemy engine with SQLite WAL mode,
session management, and schema initialization.
"""
import logging

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from arcrunner.db.engine import async_session, engine, shutdown
from arcrunner.db.models import Base, Clip, Episode, Series, StudioItem

logger = logging.getLogger(__name__)


async def _run_migrations(conn) -> None:
    """Run safe ALTER TABLE migrations for columns added after first release."""
    migrations = [
        "ALTER TABLE clips ADD COLUMN full_ref_urls TEXT",
        "ALTER TABLE clips ADD COLUMN error_message TEXT",
        "ALTER TABLE clips ADD COLUMN negative_prompt TEXT",
        "ALTER TABLE episodes ADD COLUMN style_strength INTEGER",
        "ALTER TABLE studio_items ADD COLUMN task_id VARCHAR(255)",
    ]
    for sql in migrations:
        try:
            await conn.execute(text(sql))
        except OperationalError:
            # Column already exists
            pass


async def init_database(bind: AsyncEngine | None = None):
    """Initialize database schema on first run."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _run_migrations(conn)
    logger.info("Database schema ready")


__all__ = [
    "Base",
    "Clip",
    "Episode",
    "Series",
    "StudioItem",
    "engine",
    "async_session",
    "shutdown",
    "init_database",
]
