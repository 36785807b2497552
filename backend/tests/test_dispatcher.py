"""Tests for GenerationDispatcher against a temporary database and a fake provider."""

import pytest
from sqlalchemy import update

from arcrunner.db.models import Episode
from arcrunner.errors import ClipNotFoundError, ProviderSubmissionError
from arcrunner.pipeline.dispatcher import GenerationDispatcher
from arcrunner.services.kie_client import TaskSubmission
from arcrunner.services.media_store import MediaStore

from conftest import make_clip


def _dispatcher(store, provider, media_store=None):
    return GenerationDispatcher(
        store,
        provider,
        media_store,
        default_model="veo-fast",
        default_aspect_ratio="16:9",
        reference_mode="single",
    )


@pytest.mark.asyncio
async def test_async_submission_records_task(store, provider, seeded):
    result = await _dispatcher(store, provider).dispatch("clip-1")

    assert result.ok
    assert result.task_id == "task-1"
    clip = await store.get_clip("clip-1")
    assert clip.status == "Generating"
    assert clip.task_id == "task-1"
    assert clip.model == "veo-fast"
    assert clip.full_ref_urls == (
        "http://lib/hero.jpg,http://lib/villain.jpg,http://lib/rooftop.jpg,http://explicit.jpg"
    )
    assert clip.explicit_ref_urls == "http://explicit.jpg"

    payload = provider.submissions[0]
    assert payload.api == "veo"
    assert payload.body["generationType"] == "REFERENCE_2_VIDEO"
    assert payload.body["aspectRatio"] == "9:16"
    assert payload.body["imageUrls"] == ["http://lib/hero.jpg", "http://lib/villain.jpg", "http://lib/rooftop.jpg"]


@pytest.mark.asyncio
async def test_synchronous_result_goes_straight_to_done(store, provider, seeded):
    provider.submission = TaskSubmission(result_url="https://cdn/img.png")

    result = await _dispatcher(store, provider).dispatch("clip-1", model="nano-banana-pro")

    assert result.ok
    assert result.result_url == "https://cdn/img.png"
    clip = await store.get_clip("clip-1")
    assert clip.status == "Done"
    assert clip.result_url == "https://cdn/img.png"
    assert clip.task_id is None


@pytest.mark.asyncio
async def test_failed_submission_preserves_previous_result(store, provider, seeded):
    await make_clip(
        store,
        "clip-old",
        status="Saved [2]",
        result_url="http://old-result.mp4",
        task_id="stale-task",
    )
    provider.submission = ProviderSubmissionError("Task creation rejected: quota", status_code=402)

    result = await _dispatcher(store, provider).dispatch("clip-old")

    assert not result.ok
    assert "quota" in result.error
    clip = await store.get_clip("clip-old")
    assert clip.status == "Error"
    assert clip.result_url == "http://old-result.mp4"
    assert clip.task_id is None
    assert "quota" in clip.error_message


@pytest.mark.asyncio
async def test_missing_clip_is_rejected_before_submission(store, provider, seeded):
    with pytest.raises(ClipNotFoundError):
        await _dispatcher(store, provider).dispatch("no-such-clip")
    assert provider.submissions == []


@pytest.mark.asyncio
async def test_style_asset_becomes_last_image(store, provider, seeded):
    await make_clip(store, "clip-styled", character="Hero", style="neon noir", action="Hero waits")

    await _dispatcher(store, provider).dispatch("clip-styled", model="nano-banana-pro")

    payload = provider.submissions[0]
    assert payload.api == "jobs"
    assert payload.body["input"]["image_input"] == ["http://lib/hero.jpg", "http://lib/noir.jpg"]
    assert "Image 2 defines the STYLE" in payload.body["input"]["prompt"]
    assert "NO: [daylight]" in payload.body["input"]["prompt"]


@pytest.mark.asyncio
async def test_unknown_model_falls_back_to_default(store, provider, seeded):
    await make_clip(store, "clip-odd", model="mystery-model")

    result = await _dispatcher(store, provider).dispatch("clip-odd")

    assert result.ok
    assert provider.submissions[0].api == "veo"
    assert (await store.get_clip("clip-odd")).model == "veo-fast"


@pytest.mark.asyncio
async def test_episode_style_strength_drives_flux_guidance(engine, store, provider, seeded):
    await make_clip(store, "clip-flux", style="Neon Noir", model="flux-flex")
    async with engine.begin() as conn:
        await conn.execute(update(Episode).where(Episode.id == "ep-1").values(style_strength=1))

    await _dispatcher(store, provider).dispatch("clip-flux")

    assert provider.submissions[0].body["input"]["guidance"] == 1.5


@pytest.mark.asyncio
async def test_dry_run_builds_without_writing(store, provider, seeded):
    result = await _dispatcher(store, provider).dispatch("clip-1", dry_run=True)

    assert result.ok
    assert result.payload["generationType"] == "REFERENCE_2_VIDEO"
    assert provider.submissions == []
    clip = await store.get_clip("clip-1")
    assert clip.status == ""
    assert clip.full_ref_urls is None


@pytest.mark.asyncio
async def test_local_references_are_published(store, provider, seeded, tmp_path):
    media = MediaStore(tmp_path / "media")
    media.save_bytes("uploads", "ref.png", b"png")
    await make_clip(
        store,
        "clip-local",
        explicit_ref_urls="/api/media/uploads/ref.png,/api/media/uploads/missing.png",
    )

    await _dispatcher(store, provider, media).dispatch("clip-local")

    assert provider.uploads == ["ref.png"]
    assert provider.submissions[0].body["imageUrls"] == ["https://cdn.example.com/ref.png"]
