"""Shared fixtures: a throwaway SQLite database, a seeded series and a fake provider."""

import asyncio

import pytest
import pytest_asyncio

from arcrunner.db import init_database
from arcrunner.db.engine import create_engine_for, create_session_factory
from arcrunner.db.models import Clip, Episode, Series, StudioItem
from arcrunner.services.clip_store import ClipStore
from arcrunner.services.kie_client import TaskState, TaskStatus, TaskSubmission


class FakeProvider:
    """In-memory stand-in for KieClient.

    ``statuses`` maps task id -> TaskStatus or an exception to raise;
    unknown task ids report PENDING.
    """

    def __init__(self):
        self.submission: TaskSubmission | Exception = TaskSubmission(task_id="task-1")
        self.submissions = []
        self.statuses: dict[str, TaskStatus | Exception] = {}
        self.status_calls: list[tuple[str, str]] = []
        self.delays: dict[str, float] = {}
        self.uploads: list[str] = []
        self.downloads: list[str] = []
        self.active = 0
        self.max_active = 0

    async def create_task(self, payload):
        self.submissions.append(payload)
        if isinstance(self.submission, Exception):
            raise self.submission
        return self.submission

    async def get_task_status(self, task_id: str, api: str = "jobs") -> TaskStatus:
        self.status_calls.append((task_id, api))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(task_id)
            if delay:
                await asyncio.sleep(delay)
            result = self.statuses.get(task_id, TaskStatus(TaskState.PENDING, raw_state="generating"))
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1

    async def upload_file_base64(self, data: bytes, file_name: str) -> str:
        self.uploads.append(file_name)
        return f"https://cdn.example.com/{file_name}"

    async def download_file(self, url: str) -> bytes:
        self.downloads.append(url)
        return b"result-bytes"

    async def close(self) -> None:
        pass


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_database(bind=db_engine)
    yield db_engine
    await db_engine.dispose()


@pytest_asyncio.fixture
async def store(engine):
    return ClipStore(create_session_factory(engine))


@pytest.fixture
def provider():
    return FakeProvider()


@pytest_asyncio.fixture
async def seeded(store):
    """One series with a library, one episode and one idle clip."""
    series = Series(id="series-1", title="Neon Arc")
    episode = Episode(
        id="ep-1",
        series_id="series-1",
        number=1,
        title="Pilot",
        model="veo-fast",
        aspect_ratio="9:16",
    )
    library = [
        StudioItem(
            id="lib-hero",
            series_id="series-1",
            type="CHARACTER",
            name="Hero",
            description="Courier in a red jacket",
            ref_image_url="http://lib/hero.jpg,http://lib/hero-2.jpg",
        ),
        StudioItem(
            id="lib-villain",
            series_id="series-1",
            type="CHARACTER",
            name="Villain",
            description="Silver-haired broker",
            ref_image_url="http://lib/villain.jpg",
        ),
        StudioItem(
            id="lib-rooftop",
            series_id="series-1",
            type="LOCATION",
            name="Rooftop",
            description="Rain-soaked rooftop at night",
            ref_image_url="http://lib/rooftop.jpg",
        ),
        StudioItem(
            id="lib-noir",
            series_id="series-1",
            type="STYLE",
            name="Neon Noir",
            description="High-contrast neon noir",
            negatives="daylight",
            ref_image_url="http://lib/noir.jpg",
        ),
    ]
    clip = Clip(
        id="clip-1",
        episode_id="ep-1",
        scene="1.1",
        title="Chase",
        character="Hero, Villain",
        location="Rooftop",
        action="Hero leaps the gap",
        dialog="Not today.",
        explicit_ref_urls="http://explicit.jpg",
    )
    await store.add(series, episode, *library, clip)
    return {"series": series, "episode": episode, "library": library, "clip": clip}


async def make_clip(store: ClipStore, clip_id: str, **fields) -> Clip:
    """Insert an extra clip into the seeded episode."""
    values = {"episode_id": "ep-1", "scene": "1.2", "title": clip_id}
    values.update(fields)
    clip = Clip(id=clip_id, **values)
    await store.add(clip)
    return clip
