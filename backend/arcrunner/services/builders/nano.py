"""Nano Banana family payloads (``/jobs/createTask``)."""

import logging

from arcrunner.services.builders.base import GenerationContext, ProviderPayload
from arcrunner.services.builders.prompt import build_prompt, truncate_prompt
from arcrunner.services.builders.slots import assign_image_slots
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

MAX_IMAGES = 8
MAX_PROMPT_CHARS = 20000


class NanoPayloadBuilder:
    family = "nano"

    def build(self, context: GenerationContext) -> ProviderPayload:
        config = get_model_config(context.model_id)
        slots = assign_image_slots(context, max_images=MAX_IMAGES)
        prompt = truncate_prompt(build_prompt(context, slots), MAX_PROMPT_CHARS)

        params = {
            "prompt": prompt,
            "aspect_ratio": context.aspect_ratio or "16:9",
            "resolution": "1K",
            "output_format": "png",
        }
        if slots.urls:
            params["image_input"] = slots.urls

        logger.debug(
            f"Nano payload: images={len(slots.urls)} style_position={slots.style_position}"
        )
        return ProviderPayload(
            api="jobs",
            family="nano",
            body={"model": config.internal_id, "input": params},
            image_urls=list(slots.urls),
        )
