"""Wiring for the long-lived services shared by the API server and the CLI."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arcrunner.config import Settings, settings as default_settings
from arcrunner.db import async_session
from arcrunner.pipeline.dispatcher import GenerationDispatcher
from arcrunner.pipeline.poller import Poller
from arcrunner.pipeline.recovery import RecoveryService
from arcrunner.services.clip_store import ClipStore
from arcrunner.services.kie_client import KieClient
from arcrunner.services.media_store import MediaStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ClipStore
    kie: KieClient
    media: MediaStore
    dispatcher: GenerationDispatcher
    poller: Poller
    recovery: RecoveryService

    async def close(self) -> None:
        await self.poller.stop()
        await self.kie.close()


def build_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    kie: Optional[KieClient] = None,
) -> Services:
    settings = settings or default_settings
    if not settings.kie.api_key and kie is None:
        logger.warning("KIE api key not configured; provider calls will be rejected")

    store = ClipStore(session_factory or async_session)
    kie = kie or KieClient(
        api_key=settings.kie.api_key,
        base_url=settings.kie.base_url,
        upload_base_url=settings.kie.upload_base_url,
        timeout=settings.kie.request_timeout,
        status_timeout=settings.kie.status_timeout,
        max_attempts=settings.kie.submit_max_attempts,
    )
    media = MediaStore(settings.storage.media_dir)
    dispatcher = GenerationDispatcher(
        store,
        kie,
        media,
        default_model=settings.generation.default_model,
        default_aspect_ratio=settings.generation.default_aspect_ratio,
        reference_mode=settings.generation.reference_mode,
    )
    poller = Poller(
        store,
        kie,
        interval=settings.polling.interval_seconds,
        status_timeout=settings.kie.status_timeout,
        concurrency=settings.polling.concurrency,
        zombie_threshold=settings.polling.zombie_threshold,
        max_empty_responses=settings.polling.max_empty_responses,
    )
    recovery = RecoveryService(store, kie, status_timeout=settings.kie.status_timeout)
    return Services(store, kie, media, dispatcher, poller, recovery)
