"""Archive a finished clip's result to local media storage.

Downloads the result into ``generated/`` (named after the clip's scene and
title), points ``result_url`` at the local copy and advances the status
through ``Saved``, ``Saved [2]``, ``Saved [3]``...
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

from arcrunner.errors import ClipNotFoundError, ClipValidationError
from arcrunner.orchestrator.state import StatusKind, get_next_status, parse_status
from arcrunner.services.clip_store import ClipStore
from arcrunner.services.media_store import MediaStore
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

_KNOWN_EXTENSIONS = {".mp4", ".mov", ".webm", ".png", ".jpg", ".jpeg", ".webp"}


@dataclass
class ArchiveResult:
    clip_id: str
    status: str
    result_url: str
    path: Optional[Path] = None


def _extension_for(url: str, is_image: bool) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    if suffix in _KNOWN_EXTENSIONS:
        return suffix
    return ".png" if is_image else ".mp4"


async def archive_clip(
    store: ClipStore,
    media_store: MediaStore,
    download: Callable[[str], Awaitable[bytes]],
    clip_id: str,
) -> ArchiveResult:
    """Save the clip's result locally and bump its archive version.

    Raises:
        ClipValidationError: clip missing, has no result, or is not Done/Saved
    """
    clip = await store.get_clip(clip_id)
    if clip is None:
        raise ClipNotFoundError(f"Clip not found: {clip_id}")
    if not clip.result_url:
        raise ClipValidationError(f"Clip {clip_id} has no result to archive")
    if parse_status(clip.status).kind not in (StatusKind.DONE, StatusKind.SAVED):
        raise ClipValidationError(f"Clip {clip_id} is {clip.status or 'idle'}, nothing to archive")

    next_status = get_next_status(clip.status)
    if media_store.is_local_url(clip.result_url):
        await store.update_clip(clip_id, status=next_status)
        return ArchiveResult(clip_id, next_status, clip.result_url, media_store.local_path_for(clip.result_url))

    data = await download(clip.result_url)
    extension = _extension_for(clip.result_url, get_model_config(clip.model).is_image)
    stem = f"{clip.scene} {clip.title}".strip() or clip_id
    filename = media_store.unique_name("generated", stem, extension)
    path = media_store.save_bytes("generated", filename, data)
    local_url = media_store.url_for(path)

    await store.update_clip(clip_id, status=next_status, result_url=local_url)
    logger.info(f"Clip {clip_id}: archived to {path.name} ({next_status})")
    return ArchiveResult(clip_id, next_status, local_url, path)
