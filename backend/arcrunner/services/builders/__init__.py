"""Provider payload builders, one per model family.

Usage:
    from arcrunner.services.builders import GenerationContext, get_builder

    builder = get_builder("nano-banana-pro")
    payload = builder.build(GenerationContext(model_id="nano-banana-pro", ...))
"""

from arcrunner.services.builders.base import (
    AssetBrief,
    GenerationContext,
    PayloadBuilder,
    ProviderPayload,
)
from arcrunner.services.builders.flux import guidance_for_strength
from arcrunner.services.builders.registry import get_builder, get_builder_for_family
from arcrunner.services.builders.slots import ImageSlots, assign_image_slots

__all__ = [
    "AssetBrief",
    "GenerationContext",
    "ImageSlots",
    "PayloadBuilder",
    "ProviderPayload",
    "assign_image_slots",
    "get_builder",
    "get_builder_for_family",
    "guidance_for_strength",
]
