"""Flux family payloads (``/jobs/createTask``)."""

import logging
from typing import Optional

from arcrunner.services.builders.base import GenerationContext, ProviderPayload
from arcrunner.services.builders.prompt import build_prompt
from arcrunner.services.builders.slots import assign_image_slots
from arcrunner.services.models import get_model_config

logger = logging.getLogger(__name__)

MAX_IMAGES = 8
DEFAULT_STRENGTH = 5.0


def guidance_for_strength(strength: Optional[float]) -> float:
    """Map the style slider onto the provider guidance scale (1.5 to 10.0).

    Linear through (1, 1.5) and (10, 10.0); strength 5 lands on 5.3.
    Values below 1 are clamped to 1 so guidance never leaves that range.
    """
    s = DEFAULT_STRENGTH if strength is None else min(max(float(strength), 1.0), 10.0)
    return round(1.5 + (s - 1) * 8.5 / 9, 1)


class FluxPayloadBuilder:
    family = "flux"

    def build(self, context: GenerationContext) -> ProviderPayload:
        config = get_model_config(context.model_id)
        slots = assign_image_slots(context, max_images=MAX_IMAGES)

        model = config.internal_id
        if not slots.urls:
            model = model.replace("image-to-image", "text-to-image")

        params = {
            "prompt": build_prompt(context, slots),
            "aspect_ratio": context.aspect_ratio or "16:9",
            "resolution": "1K",
            "guidance": guidance_for_strength(context.style_strength),
        }
        if slots.urls:
            params["input_urls"] = slots.urls
        if context.seed is not None:
            params["seed"] = context.seed

        logger.debug(f"Flux payload: model={model} images={len(slots.urls)} guidance={params['guidance']}")
        return ProviderPayload(
            api="jobs",
            family="flux",
            body={"model": model, "input": params},
            image_urls=list(slots.urls),
            generation_type="image-to-image" if slots.urls else "text-to-image",
        )
