"""Model registry: user-facing model ids mapped to provider families.

Unknown or empty ids fall back to ``DEFAULT_MODEL_ID`` rather than failing.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional

logger = logging.getLogger(__name__)

ModelFamily = Literal["veo", "flux", "nano", "kling"]


@dataclass(frozen=True)
class ModelConfig:
    id: str
    label: str
    family: ModelFamily
    is_image: bool
    internal_id: str
    description: str = ""
    has_audio: bool = False


MODELS: dict[str, ModelConfig] = {
    "veo-fast": ModelConfig(
        id="veo-fast",
        label="Veo Fast",
        family="veo",
        is_image=False,
        internal_id="veo3_fast",
        description="Fast video generation",
    ),
    "veo-quality": ModelConfig(
        id="veo-quality",
        label="Veo Quality",
        family="veo",
        is_image=False,
        internal_id="veo3",
        description="High quality video generation",
    ),
    "veo-s2e": ModelConfig(
        id="veo-s2e",
        label="Veo Start 2 End",
        family="veo",
        is_image=False,
        internal_id="veo3_fast",
        description="Video transition between a start and an end frame",
    ),
    "kling-2.6": ModelConfig(
        id="kling-2.6",
        label="Kling 2.6",
        family="kling",
        is_image=False,
        internal_id="kling-2.6/image-to-video",
        description="Kling audio-visual generation",
        has_audio=True,
    ),
    "flux-pro": ModelConfig(
        id="flux-pro",
        label="Flux Pro",
        family="flux",
        is_image=True,
        internal_id="flux-2/flex-image-to-image",
        description="Pro quality image generation",
    ),
    "flux-flex": ModelConfig(
        id="flux-flex",
        label="Flux Flex",
        family="flux",
        is_image=True,
        internal_id="flux-2/flex-image-to-image",
        description="Flexible image generation",
    ),
    "nano-banana-pro": ModelConfig(
        id="nano-banana-pro",
        label="Nano Banana Pro",
        family="nano",
        is_image=True,
        internal_id="nano-banana-pro",
        description="Nano model generation",
    ),
}

DEFAULT_MODEL_ID = "veo-fast"

# Ids written by older versions of the dashboard
_LEGACY_ALIASES = {
    "veo": "veo-fast",
    "veo-2": "veo-fast",
    "veo3_fast": "veo-fast",
    "veo3": "veo-quality",
    "flux": "flux-pro",
    "flux-2/flex-image-to-image": "flux-flex",
    "nano": "nano-banana-pro",
    "kling": "kling-2.6",
}


def get_model_config(model_id: Optional[str]) -> ModelConfig:
    """Return the config for ``model_id``, falling back to the default model."""
    if not model_id:
        return MODELS[DEFAULT_MODEL_ID]
    key = model_id.strip()
    if key in MODELS:
        return MODELS[key]
    if key in _LEGACY_ALIASES:
        return MODELS[_LEGACY_ALIASES[key]]

    lowered = key.lower()
    for family_hint, alias in (("nano", "nano-banana-pro"), ("banana", "nano-banana-pro"),
                               ("kling", "kling-2.6"), ("flux", "flux-flex"), ("veo", "veo-fast")):
        if family_hint in lowered:
            return MODELS[alias]

    logger.warning(f"Unknown model id {model_id!r}, falling back to {DEFAULT_MODEL_ID}")
    return MODELS[DEFAULT_MODEL_ID]


def resolve_model_id(*candidates: Optional[str], default: str = DEFAULT_MODEL_ID) -> str:
    """Return the first non-empty candidate, in priority order."""
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return default
