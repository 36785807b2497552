"""Generation dispatch: one clip in, one provider task out.

Flow for ``dispatch(clip_id)``:

1. Load the clip with its episode and series. A missing clip or an
   orphaned clip raises ClipValidationError before anything is written.
2. Resolve library and explicit reference images (single mode by default)
   and persist the derived ``full_ref_urls``.
3. Pick the payload builder by model (request > clip > episode > series
   default > configured default; unknown ids fall back).
4. Mark the clip Generating, submit, then record the outcome:
   a synchronous result goes straight to Done, a task id stays
   Generating, a failure goes to Error with the prior result URL kept.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from arcrunner.config import settings
from arcrunner.db.models import Clip, Episode, StudioItem
from arcrunner.errors import ClipNotFoundError, ClipValidationError, KieApiError
from arcrunner.fields import split_csv
from arcrunner.orchestrator.state import DONE, ERROR, GENERATING
from arcrunner.pipeline.reconcile import GenerationProvider
from arcrunner.services.builders import AssetBrief, GenerationContext, get_builder
from arcrunner.services.clip_store import ClipStore
from arcrunner.services.library import (
    build_library_lookup,
    find_library_asset,
    normalize_asset_urls,
)
from arcrunner.services.media_store import MediaStore
from arcrunner.services.models import get_model_config, resolve_model_id
from arcrunner.services.reference_resolver import (
    ClipReferenceSource,
    ResolvedReferences,
    ResolveMode,
    resolve_clip_images,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    ok: bool
    task_id: Optional[str] = None
    result_url: Optional[str] = None
    error: Optional[str] = None
    payload: Optional[dict[str, Any]] = None


def _brief(item: Optional[StudioItem]) -> Optional[AssetBrief]:
    if item is None:
        return None
    return AssetBrief(name=item.name, description=item.description or "", negatives=item.negatives or "")


class GenerationDispatcher:
    """Builds and submits generation requests for clips."""

    def __init__(
        self,
        store: ClipStore,
        provider: GenerationProvider,
        media_store: Optional[MediaStore] = None,
        *,
        default_model: Optional[str] = None,
        default_aspect_ratio: Optional[str] = None,
        reference_mode: Optional[ResolveMode] = None,
    ):
        self.store = store
        self.provider = provider
        self.media_store = media_store
        self.default_model = default_model or settings.generation.default_model
        self.default_aspect_ratio = default_aspect_ratio or settings.generation.default_aspect_ratio
        self.reference_mode: ResolveMode = reference_mode or settings.generation.reference_mode

    async def dispatch(
        self,
        clip_id: str,
        *,
        model: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
        style_strength: Optional[float] = None,
        style_image_index: Optional[int] = None,
        dry_run: bool = False,
    ) -> DispatchResult:
        """Submit one clip for generation.

        With ``dry_run`` the payload is built and returned but nothing is
        written or submitted.

        Raises:
            ClipValidationError: clip not found or has no episode
        """
        clip = await self.store.get_clip(clip_id)
        if clip is None:
            raise ClipNotFoundError(f"Clip not found: {clip_id}")
        episode = clip.episode
        if episode is None:
            raise ClipValidationError(f"Clip {clip_id} has no episode")

        series_default = episode.series.default_model if episode.series else None
        model_id = get_model_config(
            resolve_model_id(model, clip.model, episode.model, series_default, default=self.default_model)
        ).id

        library = await self.store.find_library_assets_by_series(episode.series_id)
        refs = resolve_clip_images(
            ClipReferenceSource.from_clip(clip), build_library_lookup(library), mode=self.reference_mode
        )
        context = self._build_context(
            clip,
            episode,
            library,
            refs,
            model_id=model_id,
            aspect_ratio=aspect_ratio,
            style_strength=style_strength,
            style_image_index=style_image_index,
        )

        if dry_run:
            payload = get_builder(model_id).build(context)
            return DispatchResult(ok=True, payload=payload.body)

        await self.store.update_clip(
            clip.id,
            full_ref_urls=refs.full_refs or None,
            status=GENERATING,
            task_id=None,
            model=model_id,
            error_message=None,
        )

        try:
            if self.media_store is not None:
                context = await self._publish_local_media(context)
            payload = get_builder(model_id).build(context)
            logger.info(f"Clip {clip.id}: submitting {model_id} ({payload.generation_type or payload.family})")
            submission = await self.provider.create_task(payload)
        except KieApiError as e:
            return await self._fail(clip.id, str(e))
        except Exception as e:
            logger.error(f"Clip {clip.id}: dispatch failed unexpectedly: {e}", exc_info=True)
            return await self._fail(clip.id, str(e) or type(e).__name__)

        if submission.result_url:
            await self.store.update_clip(
                clip.id, status=DONE, result_url=submission.result_url, task_id=None
            )
            logger.info(f"Clip {clip.id}: synchronous result")
            return DispatchResult(ok=True, result_url=submission.result_url, payload=payload.body)

        await self.store.update_clip(clip.id, status=GENERATING, task_id=submission.task_id)
        logger.info(f"Clip {clip.id}: task {submission.task_id} submitted")
        return DispatchResult(ok=True, task_id=submission.task_id, payload=payload.body)

    async def _fail(self, clip_id: str, message: str) -> DispatchResult:
        # result_url is not written here
        await self.store.update_clip(clip_id, status=ERROR, task_id=None, error_message=message)
        logger.warning(f"Clip {clip_id}: submission failed: {message}")
        return DispatchResult(ok=False, error=message)

    def _build_context(
        self,
        clip: Clip,
        episode: Episode,
        library: list[StudioItem],
        refs: ResolvedReferences,
        *,
        model_id: str,
        aspect_ratio: Optional[str],
        style_strength: Optional[float],
        style_image_index: Optional[int],
    ) -> GenerationContext:
        style_name = (clip.style or episode.style or "").strip() or None
        style_asset = find_library_asset(library, style_name, "STYLE")
        style_images = split_csv(normalize_asset_urls(style_asset.ref_image_url)) if style_asset else []

        characters = [
            brief
            for brief in (_brief(find_library_asset(library, name)) for name in split_csv(clip.character))
            if brief is not None
        ]
        location = _brief(find_library_asset(library, clip.location))

        camera = clip.camera or ""
        camera_asset = find_library_asset(library, camera, "CAMERA")
        if camera_asset is not None and camera_asset.description:
            camera = camera_asset.description

        if style_strength is None and episode.style_strength is not None:
            style_strength = float(episode.style_strength)

        return GenerationContext(
            model_id=model_id,
            character_images=refs.character_image_urls,
            location_images=refs.location_image_urls,
            explicit_images=refs.explicit_urls,
            style_image=style_images[0] if style_images else None,
            style_name=style_name,
            style_description=style_asset.description if style_asset else None,
            style_negatives=style_asset.negatives if style_asset else None,
            style_strength=style_strength,
            style_image_index=style_image_index,
            action=clip.action or "",
            dialog=clip.dialog or "",
            camera=camera,
            negative_prompt=clip.negative_prompt or "",
            character_assets=characters,
            location_asset=location,
            aspect_ratio=aspect_ratio or episode.aspect_ratio or self.default_aspect_ratio,
            seed=clip.seed if clip.seed is not None else episode.seed,
            duration=clip.duration,
            sound=get_model_config(model_id).has_audio,
        )

    async def _publish_local_media(self, context: GenerationContext) -> GenerationContext:
        """Upload ``/api/media/...`` references so the provider can fetch them.

        References that cannot be read or uploaded are dropped.
        """
        published: dict[str, Optional[str]] = {}

        async def publish(url: str) -> Optional[str]:
            if not self.media_store.is_local_url(url):
                return url
            if url in published:
                return published[url]
            public_url = None
            try:
                path = self.media_store.local_path_for(url)
                if path is None or not path.is_file():
                    logger.warning(f"Local reference missing on disk: {url}")
                else:
                    public_url = await self.provider.upload_file_base64(path.read_bytes(), path.name)
            except (KieApiError, OSError, ValueError) as e:
                logger.warning(f"Dropping reference {url}: {e}")
            published[url] = public_url
            return public_url

        async def publish_all(urls: list[str]) -> list[str]:
            result = []
            for url in urls:
                public = await publish(url)
                if public:
                    result.append(public)
            return result

        style_image = await publish(context.style_image) if context.style_image else None
        return context.model_copy(
            update={
                "character_images": await publish_all(context.character_images),
                "location_images": await publish_all(context.location_images),
                "explicit_images": await publish_all(context.explicit_images),
                "style_image": style_image,
            }
        )
