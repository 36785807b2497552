"""Turn a provider task status into a clip update.

Shared by the poller and the boot-time recovery scan so both apply the
same transition rules:

- success   -> Done, result URL stored, task id cleared
- failure   -> Error, error message stored, previous result URL kept
- in flight -> clip left untouched
"""

import logging
from typing import Optional, Protocol

from arcrunner.orchestrator.state import DONE, ERROR, GENERATING
from arcrunner.services.builders import ProviderPayload
from arcrunner.services.clip_store import ClipStore
from arcrunner.services.kie_client import TaskState, TaskStatus, TaskSubmission
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

# Older rows stored "TASK:<id>" in result_url instead of using task_id
LEGACY_TASK_PREFIX = "TASK:"


class GenerationProvider(Protocol):
    async def create_task(self, payload: ProviderPayload) -> TaskSubmission:
        ...

    async def get_task_status(self, task_id: str, api: str = "jobs") -> TaskStatus:
        ...

    async def upload_file_base64(self, data: bytes, file_name: str) -> str:
        ...


def api_for_model(model_id: Optional[str]) -> str:
    """Status route for a stored model id: Veo has its own, the rest use jobs."""
    return "veo" if get_model_config(model_id).family == "veo" else "jobs"


def legacy_task_id(result_url: Optional[str]) -> Optional[str]:
    if result_url and result_url.startswith(LEGACY_TASK_PREFIX):
        task_id = result_url[len(LEGACY_TASK_PREFIX):].strip()
        return task_id or None
    return None


async def apply_task_status(
    store: ClipStore,
    clip_id: str,
    status: TaskStatus,
    expect_task_id: Optional[str],
) -> bool:
    """Persist a terminal status. Returns True when the clip was updated.

    ``expect_task_id`` is the task id the status was fetched for. The write
    only lands while the clip is still Generating on that task; a clip that
    was re-dispatched during the check keeps its new task.
    """
    if status.state == TaskState.SUCCEEDED:
        fields = dict(status=DONE, result_url=status.result_url, task_id=None, error_message=None)
    elif status.state == TaskState.FAILED:
        fields = dict(status=ERROR, task_id=None, error_message=status.error or "Generation failed")
    else:
        return False

    applied = await store.update_clip_if(
        clip_id, expect_status=GENERATING, expect_task_id=expect_task_id, **fields
    )
    if not applied:
        logger.info(f"Clip {clip_id}: ignoring stale {status.state.value} result, clip changed")
        return False
    if status.state == TaskState.SUCCEEDED:
        logger.info(f"Clip {clip_id}: Done")
    else:
        logger.warning(f"Clip {clip_id}: Error ({status.error})")
    return True
