"""Shared types for payload builders.

A builder is any object with a ``family`` attribute and a pure
``build(context) -> ProviderPayload`` method. Builders do not share a base
class; the registry dispatches on model family.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from arcrunner.services.models import ModelFamily

ProviderApi = Literal["veo", "jobs"]


class AssetBrief(BaseModel):
    """Descriptive text of a library asset used in prompt blocks."""

    name: str
    description: str = ""
    negatives: str = ""


class GenerationContext(BaseModel):
    """Everything a builder needs for one request. Not persisted.

    Character and location images keep the order the names appear in the
    clip. ``style_strength`` is on the user's 0-10 scale.
    ``style_image_index`` is a 0-based position for the style image in the
    final image list; None appends it last.
    """

    model_id: str
    character_images: list[str] = Field(default_factory=list)
    location_images: list[str] = Field(default_factory=list)
    explicit_images: list[str] = Field(default_factory=list)
    style_image: Optional[str] = None

    style_name: Optional[str] = None
    style_description: Optional[str] = None
    style_negatives: Optional[str] = None
    style_strength: Optional[float] = None
    style_image_index: Optional[int] = None

    action: str = ""
    dialog: str = ""
    camera: str = ""
    negative_prompt: str = ""
    character_assets: list[AssetBrief] = Field(default_factory=list)
    location_asset: Optional[AssetBrief] = None

    aspect_ratio: Optional[str] = None
    seed: Optional[int] = None
    duration: Optional[str] = None
    sound: bool = False


def duration_seconds(value: Optional[str]) -> str:
    """Provider duration field: "10" for ten-second clips, otherwise "5"."""
    return "10" if str(value or "").strip().startswith("10") else "5"


@dataclass
class ProviderPayload:
    """A request body plus the provider route it must be sent to."""

    api: ProviderApi
    family: ModelFamily
    body: dict[str, Any]
    image_urls: list[str] = field(default_factory=list)
    generation_type: Optional[str] = None


class PayloadBuilder(Protocol):
    family: ModelFamily

    def build(self, context: GenerationContext) -> ProviderPayload:
        ...
