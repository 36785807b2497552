"""Boot-time recovery for clips left in Generating.

Runs once when the process starts. For every Generating clip:

- with a task id: check it once and apply the result
- with a legacy ``TASK:<id>`` result value: same, using the embedded id
- with neither: the process died mid-dispatch; set Error immediately

The previous result URL is never cleared. Provider failures are logged per
clip and do not stop the scan.
"""

import asyncio
import logging
from dataclasses import dataclass

from arcrunner.db.models import Clip
from arcrunner.orchestrator.state import ERROR, GENERATING
from arcrunner.pipeline.reconcile import (
    GenerationProvider,
    api_for_model,
    apply_task_status,
    legacy_task_id,
)
from arcrunner.services.clip_store import ClipStore

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Interrupted before a task id was recorded"


@dataclass
class RecoverySummary:
    scanned: int = 0
    updated: int = 0
    in_flight: int = 0
    zombies: int = 0
    failed: int = 0


class RecoveryService:
    def __init__(
        self,
        store: ClipStore,
        provider: GenerationProvider,
        *,
        status_timeout: float = 10.0,
        concurrency: int = 8,
    ):
        self.store = store
        self.provider = provider
        self.status_timeout = status_timeout
        self.concurrency = max(concurrency, 1)

    async def recover_all(self) -> RecoverySummary:
        clips = await self.store.find_clips_by_status(GENERATING)
        summary = RecoverySummary(scanned=len(clips))
        if not clips:
            return summary

        logger.info(f"Recovering {len(clips)} clip(s) left in {GENERATING}")
        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes = await asyncio.gather(*(self._recover(clip, semaphore) for clip in clips))

        summary.updated = outcomes.count("updated")
        summary.in_flight = outcomes.count("pending")
        summary.zombies = outcomes.count("zombie")
        summary.failed = outcomes.count("failed")
        logger.info(
            f"Recovery finished: updated={summary.updated} in_flight={summary.in_flight} "
            f"zombies={summary.zombies} failed={summary.failed}"
        )
        return summary

    async def _recover(self, clip: Clip, semaphore: asyncio.Semaphore) -> str:
        task_id = clip.task_id
        from_legacy = False
        if not task_id:
            task_id = legacy_task_id(clip.result_url)
            from_legacy = task_id is not None

        try:
            if not task_id:
                applied = await self.store.update_clip_if(
                    clip.id,
                    expect_status=GENERATING,
                    expect_task_id=None,
                    status=ERROR,
                    error_message=INTERRUPTED_ERROR,
                )
                if not applied:
                    return "pending"
                logger.warning(f"Clip {clip.id}: no task id, set to Error")
                return "zombie"

            async with semaphore:
                status = await asyncio.wait_for(
                    self.provider.get_task_status(task_id, api_for_model(clip.model)),
                    timeout=self.status_timeout,
                )
            if await apply_task_status(self.store, clip.id, status, clip.task_id):
                return "updated"
            if from_legacy:
                # Move the embedded id into task_id so the poller can track it
                await self.store.update_clip_if(
                    clip.id, expect_status=GENERATING, expect_task_id=None, task_id=task_id
                )
            return "pending"
        except asyncio.TimeoutError:
            logger.warning(f"Clip {clip.id}: recovery status check timed out")
            return "failed"
        except Exception as e:
            logger.error(f"Clip {clip.id}: recovery failed: {e}", exc_info=True)
            return "failed"
