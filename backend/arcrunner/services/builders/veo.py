"""Veo family payloads (``/veo/generate``)."""

import logging

from arcrunner.services.builders.base import GenerationContext, ProviderPayload, duration_seconds
from arcrunner.services.builders.prompt import build_plain_prompt, build_prompt
from arcrunner.services.builders.slots import ImageSlots, assign_image_slots
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

IMAGE_TO_VIDEO = "IMAGE_TO_VIDEO"
REFERENCE_2_VIDEO = "REFERENCE_2_VIDEO"
TEXT_2_VIDEO = "TEXT_2_VIDEO"

MAX_IMAGES = 3
FAST_BACKEND = "veo3_fast"


class VeoPayloadBuilder:
    family = "veo"

    def build(self, context: GenerationContext) -> ProviderPayload:
        config = get_model_config(context.model_id)
        if config.id == "veo-s2e":
            return self._build_start_to_end(context, config.internal_id)

        slots = assign_image_slots(context, max_images=MAX_IMAGES)
        model = config.internal_id
        if slots.urls:
            generation_type = REFERENCE_2_VIDEO
            if model != FAST_BACKEND:
                logger.info(f"{config.id} does not take reference images, using {FAST_BACKEND}")
                model = FAST_BACKEND
        else:
            generation_type = TEXT_2_VIDEO

        return self._payload(context, model, build_prompt(context, slots), slots.urls, generation_type)

    def _build_start_to_end(self, context: GenerationContext, model: str) -> ProviderPayload:
        images = [url for url in context.explicit_images if url]
        if len(images) >= 2:
            if len(images) > 2:
                logger.warning(f"Start-to-end takes two frames, ignoring {len(images) - 2} extra")
            images = images[:2]
            generation_type = IMAGE_TO_VIDEO
            prompt = (
                "[INSTRUCTION: Transition from the start frame (Image 1) to the end frame (Image 2).]\n\n"
                + build_plain_prompt(context)
            )
        elif len(images) == 1:
            generation_type = REFERENCE_2_VIDEO
            prompt = build_plain_prompt(context, ImageSlots(urls=images, reference_positions=[1]))
        else:
            generation_type = TEXT_2_VIDEO
            prompt = build_plain_prompt(context)
        return self._payload(context, model, prompt, images, generation_type)

    def _payload(
        self,
        context: GenerationContext,
        model: str,
        prompt: str,
        images: list[str],
        generation_type: str,
    ) -> ProviderPayload:
        body = {
            "model": model,
            "prompt": prompt,
            "generationType": generation_type,
            "aspectRatio": context.aspect_ratio or "16:9",
            "durationType": duration_seconds(context.duration),
            "enableTranslation": True,
            "enableFallback": True,
        }
        if images:
            body["imageUrls"] = list(images)
        if context.seed is not None:
            body["seeds"] = context.seed
        logger.debug(f"Veo payload: model={model} type={generation_type} images={len(images)}")
        return ProviderPayload(
            api="veo",
            family="veo",
            body=body,
            image_urls=list(images),
            generation_type=generation_type,
        )
