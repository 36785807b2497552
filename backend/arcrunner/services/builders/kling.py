"""Kling image-to-video payloads (``/jobs/createTask``).

Kling takes a single conditioning image. An explicit reference image wins
over library character/location images; the style image is never sent.
"""

import logging

from arcrunner.services.builders.base import GenerationContext, ProviderPayload, duration_seconds
from arcrunner.services.builders.prompt import build_prompt, truncate_prompt
from arcrunner.services.builders.slots import assign_image_slots
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 2000


class KlingPayloadBuilder:
    family = "kling"

    def build(self, context: GenerationContext) -> ProviderPayload:
        config = get_model_config(context.model_id)
        explicit = [url for url in context.explicit_images if url]
        library = [url for url in context.character_images + context.location_images if url]
        image = (explicit or library or [None])[0]

        single = context.model_copy(
            update={
                "character_images": [],
                "location_images": [],
                "explicit_images": [image] if image else [],
                "style_image": None,
            }
        )
        slots = assign_image_slots(single, max_images=1)
        prompt = truncate_prompt(build_prompt(single, slots), MAX_PROMPT_CHARS)

        params = {
            "prompt": prompt,
            "duration": duration_seconds(context.duration),
            "sound": bool(context.sound),
        }
        if image:
            params["image_urls"] = [image]

        logger.debug(f"Kling payload: image={'yes' if image else 'no'} duration={params['duration']}")
        return ProviderPayload(
            api="jobs",
            family="kling",
            body={"model": config.internal_id, "input": params},
            image_urls=[image] if image else [],
        )
