"""Background poller for clips waiting on a provider task.

Each tick:

1. Loads every clip in Generating.
2. Clips with a task id are checked concurrently (bounded by
   ``concurrency``); each check has its own timeout. Timeouts and
   transient provider errors are logged and retried next tick.
3. Clips without a task id are zombies. One sighting is not enough, since
   the dispatcher marks a clip Generating just before it has a task id;
   after ``zombie_threshold`` consecutive sightings the clip is set to
   Error.

The loop schedules the next tick only after the current one (and the
``on_update`` callback) has finished.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from arcrunner.db.models import Clip
from arcrunner.errors import ProviderPollError
from arcrunner.orchestrator.state import ERROR, GENERATING
from arcrunner.pipeline.reconcile import GenerationProvider, api_for_model, apply_task_status
from arcrunner.services.clip_store import ClipStore

logger = logging.getLogger(__name__)

ZOMBIE_ERROR = "Stuck in Generating without a task id"
EMPTY_RESPONSE_ERROR = "EMPTY_RESPONSE"


@dataclass
class PollSummary:
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    zombies_corrected: int = 0


class Poller:
    """Owns the polling loop; ``start()``/``stop()`` control its lifetime."""

    def __init__(
        self,
        store: ClipStore,
        provider: GenerationProvider,
        *,
        interval: float = 15.0,
        status_timeout: float = 10.0,
        concurrency: int = 4,
        zombie_threshold: int = 3,
        max_empty_responses: int = 3,
        on_update: Optional[Callable[[PollSummary], Any]] = None,
    ):
        self.store = store
        self.provider = provider
        self.interval = interval
        self.status_timeout = status_timeout
        self.concurrency = max(concurrency, 1)
        self.zombie_threshold = max(zombie_threshold, 1)
        self.max_empty_responses = max(max_empty_responses, 1)
        self.on_update = on_update
        self._zombie_sightings: dict[str, int] = {}
        self._empty_responses: dict[str, int] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="clip-poller")
        logger.info(f"Poller started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Poller stopped")

    async def _run(self) -> None:
        while True:
            try:
                summary = await self.tick()
                if self.on_update is not None:
                    result = self.on_update(summary)
                    if inspect.isawaitable(result):
                        await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Poll tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def tick(self) -> PollSummary:
        """Run one polling pass."""
        clips = await self.store.find_clips_by_status(GENERATING)
        tracked = [clip for clip in clips if clip.task_id]
        zombies = [clip for clip in clips if not clip.task_id]

        summary = PollSummary(checked=len(tracked))
        summary.zombies_corrected = await self._handle_zombies(zombies)

        tracked_ids = {clip.id for clip in tracked}
        for clip_id in list(self._empty_responses):
            if clip_id not in tracked_ids:
                del self._empty_responses[clip_id]

        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(*(self._check(clip, semaphore) for clip in tracked))
        summary.updated = outcomes.count("updated")
        summary.skipped = outcomes.count("skipped")

        if tracked or zombies:
            logger.info(
                f"Poll tick: checked={summary.checked} updated={summary.updated} "
                f"skipped={summary.skipped} zombies_corrected={summary.zombies_corrected}"
            )
        return summary

    async def _handle_zombies(self, zombies: list[Clip]) -> int:
        seen = {clip.id for clip in zombies}
        for clip_id in list(self._zombie_sightings):
            if clip_id not in seen:
                del self._zombie_sightings[clip_id]

        corrected = 0
        for clip in zombies:
            count = self._zombie_sightings.get(clip.id, 0) + 1
            if count < self.zombie_threshold:
                self._zombie_sightings[clip.id] = count
                logger.debug(f"Clip {clip.id}: no task id ({count}/{self.zombie_threshold})")
                continue
            try:
                applied = await self.store.update_clip_if(
                    clip.id,
                    expect_status=GENERATING,
                    expect_task_id=None,
                    status=ERROR,
                    error_message=ZOMBIE_ERROR,
                )
            except Exception as e:
                logger.error(f"Clip {clip.id}: failed to correct zombie: {e}", exc_info=True)
                continue
            self._zombie_sightings.pop(clip.id, None)
            if not applied:
                logger.debug(f"Clip {clip.id}: received a task id before correction")
                continue
            corrected += 1
            logger.warning(f"Clip {clip.id}: {ZOMBIE_ERROR}, set to Error")
        return corrected

    async def _check(self, clip: Clip, semaphore: asyncio.Semaphore) -> str:
        """Check one clip. Returns 'updated', 'pending' or 'skipped'."""
        async with semaphore:
            try:
                status = await asyncio.wait_for(
                    self.provider.get_task_status(clip.task_id, api_for_model(clip.model)),
                    timeout=self.status_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Clip {clip.id}: status check timed out after {self.status_timeout}s")
                return "skipped"
            except ProviderPollError as e:
                logger.warning(f"Clip {clip.id}: status check failed: {e}")
                return "skipped"
            except Exception as e:
                logger.error(f"Clip {clip.id}: unexpected status check error: {e}", exc_info=True)
                return "skipped"

            try:
                if status.is_empty:
                    return await self._count_empty(clip)
                self._empty_responses.pop(clip.id, None)
                updated = await apply_task_status(self.store, clip.id, status, clip.task_id)
            except Exception as e:
                logger.error(f"Clip {clip.id}: failed to store status: {e}", exc_info=True)
                return "skipped"
            return "updated" if updated else "pending"

    async def _count_empty(self, clip: Clip) -> str:
        count = self._empty_responses.get(clip.id, 0) + 1
        if count < self.max_empty_responses:
            self._empty_responses[clip.id] = count
            logger.debug(f"Clip {clip.id}: empty provider response ({count}/{self.max_empty_responses})")
            return "pending"
        self._empty_responses.pop(clip.id, None)
        applied = await self.store.update_clip_if(
            clip.id,
            expect_status=GENERATING,
            expect_task_id=clip.task_id,
            status=ERROR,
            task_id=None,
            error_message=EMPTY_RESPONSE_ERROR,
        )
        if not applied:
            return "pending"
        logger.warning(f"Clip {clip.id}: {count} empty provider responses, set to Error")
        return "updated"
