"""Tests for the HTTP routes, served in-process through httpx's ASGI transport."""

import asyncio

import httpx
import pytest
import pytest_asyncio

from arcrunner.api import app as app_module
from arcrunner.api.app import app, lifespan
from arcrunner.pipeline.dispatcher import GenerationDispatcher
from arcrunner.pipeline.poller import Poller
from arcrunner.pipeline.recovery import RecoveryService
from arcrunner.runtime import Services
from arcrunner.services.kie_client import TaskSubmission
from arcrunner.services.media_store import MediaStore


@pytest_asyncio.fixture
async def client(store, provider, seeded, tmp_path):
    media = MediaStore(tmp_path / "media")
    app.state.services = Services(
        store=store,
        kie=provider,
        media=media,
        dispatcher=GenerationDispatcher(store, provider, media, default_model="veo-fast"),
        poller=Poller(store, provider, interval=60),
        recovery=RecoveryService(store, provider),
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


@pytest.mark.asyncio
async def test_generate_and_read_back(client):
    response = await client.post("/api/generate", json={"clip_id": "clip-1"})
    assert response.status_code == 200
    assert response.json()["task_id"] == "task-1"

    clip = (await client.get("/api/clips/clip-1")).json()
    assert clip["status"] == "Generating"
    assert clip["status_kind"] == "generating"


@pytest.mark.asyncio
async def test_generate_unknown_clip_is_404(client):
    response = await client.post("/api/generate", json={"clip_id": "nope"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_style_strength_is_validated(client):
    response = await client.post("/api/generate", json={"clip_id": "clip-1", "style_strength": 11})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_poll_and_recover_report_summaries(client):
    poll = await client.post("/api/poll")
    recover = await client.post("/api/recover")

    assert poll.json() == {"checked": 0, "updated": 0, "skipped": 0, "zombies_corrected": 0}
    assert recover.json()["scanned"] == 0


@pytest.mark.asyncio
async def test_archive_and_serve_media(client, provider):
    provider.submission = TaskSubmission(result_url="https://cdn/frame.png")
    await client.post("/api/generate", json={"clip_id": "clip-1", "model": "nano-banana-pro"})

    archived = await client.post("/api/clips/clip-1/archive")
    assert archived.status_code == 200
    body = archived.json()
    assert body["status"] == "Saved"
    assert body["result_url"] == "/api/media/generated/1.1 Chase.png"

    media = await client.get(body["result_url"])
    assert media.status_code == 200
    assert media.content == b"result-bytes"

    escaped = await client.get("/api/media/..%2F..%2Fetc/passwd")
    assert escaped.status_code == 404


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/health")
    assert response.json()["status"] == "ok"
    assert response.json()["poller_running"] is False


class _SlowRecovery:
    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def recover_all(self):
        self.started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class _LifespanServices:
    def __init__(self, store, provider):
        self.recovery = _SlowRecovery()
        self.poller = Poller(store, provider, interval=60)
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_shutdown_waits_for_cancelled_recovery(store, provider, monkeypatch):
    services = _LifespanServices(store, provider)

    async def noop(*args, **kwargs):
        return None

    monkeypatch.setattr(app_module, "init_database", noop)
    monkeypatch.setattr(app_module, "shutdown", noop)
    monkeypatch.setattr(app_module, "build_services", lambda settings: services)
    monkeypatch.setattr(app_module.settings.polling, "enabled", False)

    async with lifespan(app):
        await services.recovery.started.wait()

    assert services.recovery.cancelled
    assert services.closed
