"""API route handlers and Pydantic response schemas."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from arcrunner import __version__
from arcrunner.db.models import Clip
from arcrunner.errors import ClipNotFoundError, ClipValidationError, KieApiError
from arcrunner.orchestrator.state import parse_status
from arcrunner.pipeline.archive import archive_clip
from arcrunner.runtime import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ============================================================================
# Pydantic Schemas
# ============================================================================

class GenerateRequest(BaseModel):
    """Request schema for POST /api/generate."""
    clip_id: str
    model: Optional[str] = None
    aspect_ratio: Optional[str] = None
    style_strength: Optional[float] = Field(default=None, ge=0, le=10)
    style_image_index: Optional[int] = Field(default=None, ge=0)
    dry_run: bool = False


class GenerateResponse(BaseModel):
    """Response schema for POST /api/generate."""
    ok: bool
    task_id: Optional[str] = None
    result_url: Optional[str] = None
    error: Optional[str] = None
    payload: Optional[dict] = None


class PollResponse(BaseModel):
    checked: int
    updated: int
    skipped: int
    zombies_corrected: int


class RecoverResponse(BaseModel):
    scanned: int
    updated: int
    in_flight: int
    zombies: int
    failed: int


class ClipResponse(BaseModel):
    """Clip as shown on the dashboard."""
    id: str
    episode_id: str
    scene: str
    title: str
    character: str
    location: str
    style: str
    status: str
    status_kind: str
    archive_version: int
    task_id: Optional[str] = None
    result_url: Optional[str] = None
    model: Optional[str] = None
    error_message: Optional[str] = None
    explicit_ref_urls: Optional[str] = None
    full_ref_urls: Optional[str] = None


class ArchiveResponse(BaseModel):
    clip_id: str
    status: str
    result_url: str


def _services(request: Request) -> Services:
    return request.app.state.services


def _clip_response(clip: Clip) -> ClipResponse:
    parsed = parse_status(clip.status)
    return ClipResponse(
        id=clip.id,
        episode_id=clip.episode_id,
        scene=clip.scene or "",
        title=clip.title or "",
        character=clip.character or "",
        location=clip.location or "",
        style=clip.style or "",
        status=clip.status or "",
        status_kind=parsed.kind.name.lower(),
        archive_version=parsed.version,
        task_id=clip.task_id,
        result_url=clip.result_url,
        model=clip.model,
        error_message=clip.error_message,
        explicit_ref_urls=clip.explicit_ref_urls,
        full_ref_urls=clip.full_ref_urls,
    )


# ============================================================================
# Generation
# ============================================================================

@router.post("/generate", response_model=GenerateResponse)
async def generate(body: GenerateRequest, request: Request):
    """Submit one clip for generation.

    A provider rejection is reported as ``ok: false`` with the clip left in
    Error; an invalid request is a 404/422 with no state change.
    """
    services = _services(request)
    try:
        result = await services.dispatcher.dispatch(
            body.clip_id,
            model=body.model,
            aspect_ratio=body.aspect_ratio,
            style_strength=body.style_strength,
            style_image_index=body.style_image_index,
            dry_run=body.dry_run,
        )
    except ClipNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ClipValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return GenerateResponse(
        ok=result.ok,
        task_id=result.task_id,
        result_url=result.result_url,
        error=result.error,
        payload=result.payload,
    )


@router.post("/poll", response_model=PollResponse)
async def poll(request: Request):
    """Run one polling pass now."""
    summary = await _services(request).poller.tick()
    return PollResponse(**vars(summary))


@router.post("/recover", response_model=RecoverResponse)
async def recover(request: Request):
    """Run the recovery scan over clips stuck in Generating."""
    summary = await _services(request).recovery.recover_all()
    return RecoverResponse(**vars(summary))


# ============================================================================
# Clips
# ============================================================================

@router.get("/clips", response_model=list[ClipResponse])
async def list_clips(request: Request, episode_id: Optional[str] = None):
    clips = await _services(request).store.list_clips(episode_id)
    return [_clip_response(c) for c in clips]


@router.get("/clips/{clip_id}", response_model=ClipResponse)
async def get_clip(clip_id: str, request: Request):
    clip = await _services(request).store.get_clip(clip_id)
    if not clip:
        raise HTTPException(status_code=404, detail="Clip not found")
    return _clip_response(clip)


@router.post("/clips/{clip_id}/archive", response_model=ArchiveResponse)
async def archive(clip_id: str, request: Request):
    """Save the clip's result locally and advance its Saved version."""
    services = _services(request)
    try:
        result = await archive_clip(services.store, services.media, services.kie.download_file, clip_id)
    except ClipNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ClipValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except KieApiError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ArchiveResponse(clip_id=result.clip_id, status=result.status, result_url=result.result_url)


@router.get("/media/{media_path:path}")
async def get_media(media_path: str, request: Request):
    """Serve uploaded or archived media from the local store."""
    try:
        file_path = _services(request).media.resolve(media_path)
    except ValueError:
        raise HTTPException(status_code=404, detail="Media not found")
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="Media not found")
    return FileResponse(path=str(file_path))


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    services = _services(request)
    return {
        "status": "ok",
        "version": __version__,
        "poller_running": services.poller.is_running,
    }
