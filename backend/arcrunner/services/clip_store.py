"""Persistence access for clips and library assets.

All clip mutations are single UPDATE statements. Writes that act on a
status read earlier (poll and recovery results, zombie corrections) go
through ``update_clip_if`` so a stale result cannot overwrite a clip that
was re-dispatched in the meantime.
"""

import logging
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from arcrunner.db.models import Clip, Episode, Series, StudioItem

logger = logging.getLogger(__name__)

_UPDATABLE = {
    "status",
    "task_id",
    "result_url",
    "model",
    "error_message",
    "full_ref_urls",
}


class ClipStore:
    """Async repository over the clip, episode and studio tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_clip(self, clip_id: str) -> Optional[Clip]:
        """Load a clip with its episode and series."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Clip)
                .where(Clip.id == clip_id)
                .options(selectinload(Clip.episode).selectinload(Episode.series))
            )
            return result.scalar_one_or_none()

    async def find_clips_by_status(self, status: str) -> list[Clip]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Clip)
                .where(Clip.status == status)
                .options(selectinload(Clip.episode))
                .order_by(Clip.sort_order)
            )
            return list(result.scalars().all())

    async def list_clips(self, episode_id: Optional[str] = None) -> list[Clip]:
        query = select(Clip).order_by(Clip.sort_order)
        if episode_id:
            query = query.where(Clip.episode_id == episode_id)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_library_assets_by_series(self, series_id: str) -> list[StudioItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StudioItem)
                .where(StudioItem.series_id == series_id)
                .order_by(StudioItem.created_at)
            )
            return list(result.scalars().all())

    async def update_clip(self, clip_id: str, **fields: Any) -> None:
        """Apply a partial update to one clip.

        Only status/result columns may be written here; unknown keys raise
        ValueError.
        """
        await self._update(clip_id, {}, fields)

    async def update_clip_if(
        self,
        clip_id: str,
        *,
        expect_status: str,
        expect_task_id: Optional[str],
        **fields: Any,
    ) -> bool:
        """Apply a partial update only while the clip is still in the expected state.

        The status and task id checks are part of the UPDATE's WHERE clause;
        ``expect_task_id=None`` requires the task id to be empty. Returns
        False when the row changed since it was read, in which case nothing
        is written.
        """
        return await self._update(
            clip_id,
            {"status": expect_status, "task_id": expect_task_id},
            fields,
        )

    async def _update(self, clip_id: str, expect: dict[str, Any], fields: dict[str, Any]) -> bool:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update clip fields: {sorted(unknown)}")
        if not fields:
            return False

        statement = update(Clip).where(Clip.id == clip_id)
        if "status" in expect:
            statement = statement.where(Clip.status == expect["status"])
        if "task_id" in expect:
            if expect["task_id"]:
                statement = statement.where(Clip.task_id == expect["task_id"])
            else:
                statement = statement.where(or_(Clip.task_id.is_(None), Clip.task_id == ""))

        async with self._session_factory() as session:
            result = await session.execute(statement.values(**fields))
            await session.commit()
        if result.rowcount == 0:
            logger.debug(f"Clip {clip_id} not updated: no row matched {expect or 'id'}")
            return False
        logger.debug(f"Clip {clip_id} updated: {sorted(fields)}")
        return True

    async def add(self, *records: Series | Episode | Clip | StudioItem) -> None:
        async with self._session_factory() as session:
            session.add_all(records)
            await session.commit()
