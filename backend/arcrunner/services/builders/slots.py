"""Positional image numbering shared by all builders.

Images are numbered 1..N in this order: character images, location
images, explicit images, then the style image. An explicit
``style_image_index`` moves the style image to that position instead, and
the content images are renumbered around it.
"""

from dataclasses import dataclass, field
from typing import Optional

from arcrunner.services.builders.base import GenerationContext


@dataclass
class ImageSlots:
    """Final image list with the 1-based position of each role."""

    urls: list[str] = field(default_factory=list)
    character_positions: list[int] = field(default_factory=list)
    location_positions: list[int] = field(default_factory=list)
    reference_positions: list[int] = field(default_factory=list)
    style_position: int = 0

    @property
    def content_positions(self) -> list[int]:
        return sorted(self.character_positions + self.location_positions + self.reference_positions)

    @property
    def has_style_image(self) -> bool:
        return self.style_position > 0


def assign_image_slots(context: GenerationContext, max_images: Optional[int] = None) -> ImageSlots:
    """Number the context's images.

    Duplicate URLs keep their first position. With ``max_images`` the
    content images are truncated so that content plus style fit.
    """
    style = context.style_image or None
    content: list[tuple[str, str]] = []
    seen: set[str] = set()
    if style:
        seen.add(style)

    for role, urls in (
        ("character", context.character_images),
        ("location", context.location_images),
        ("reference", context.explicit_images),
    ):
        for url in urls:
            if url and url not in seen:
                seen.add(url)
                content.append((role, url))

    if max_images is not None:
        capacity = max(max_images - (1 if style else 0), 0)
        content = content[:capacity]

    ordered = list(content)
    if style:
        index = context.style_image_index
        if index is None or index < 0 or index > len(ordered):
            index = len(ordered)
        ordered.insert(index, ("style", style))

    slots = ImageSlots(urls=[url for _, url in ordered])
    for position, (role, _) in enumerate(ordered, start=1):
        if role == "character":
            slots.character_positions.append(position)
        elif role == "location":
            slots.location_positions.append(position)
        elif role == "reference":
            slots.reference_positions.append(position)
        else:
            slots.style_position = position
    return slots


def format_image_list(positions: list[int]) -> str:
    """``[1, 2]`` -> ``"IMAGE 1, IMAGE 2"``."""
    return ", ".join(f"IMAGE {p}" for p in positions)
