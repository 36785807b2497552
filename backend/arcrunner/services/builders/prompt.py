"""Prompt assembly shared by the payload builders.

With a style present the prompt is a "sandwich": a style header, the
numbered setup/reference block, an ``OUTPUT SUBJECT:`` directive and a
trailing priority rule telling the model which numbered images carry the
subject and which one carries the rendering style. Without a style it
degrades to a single cinematic sentence.
"""

from typing import Optional

from arcrunner.services.builders.base import GenerationContext
from arcrunner.services.builders.slots import ImageSlots, format_image_list


def has_style(context: GenerationContext) -> bool:
    return bool(context.style_image or context.style_name or context.style_description)


def strength_percent(strength: Optional[float]) -> Optional[int]:
    """0-10 slider value as a percentage, or None when unset."""
    if strength is None:
        return None
    return int(round(min(max(strength, 0.0), 10.0) * 10))


def _bracket(text: str) -> str:
    return f"[{text.strip()}]"


def build_plain_prompt(context: GenerationContext, slots: Optional[ImageSlots] = None) -> str:
    parts = ["Cinematic shot."]
    if slots is not None and slots.content_positions:
        parts.append(f"Reference images: {format_image_list(slots.content_positions)}.")
    if context.action.strip():
        parts.append(context.action.strip())
    if context.dialog.strip():
        parts.append(f'Character says: "{context.dialog.strip()}".')
    if context.camera.strip():
        parts.append(f"{context.camera.strip().rstrip('.')}.")
    parts.append("High quality.")
    if context.negative_prompt.strip():
        parts.append(f"NO: {_bracket(context.negative_prompt)}")
    return " ".join(parts)


def _setup_block(context: GenerationContext, slots: ImageSlots) -> list[str]:
    lines: list[str] = []
    if context.camera.strip():
        lines.append(f"CAMERA: {_bracket(context.camera)}")
    if context.location_asset is not None or slots.location_positions:
        name = context.location_asset.name if context.location_asset else "Location"
        desc = context.location_asset.description if context.location_asset else ""
        images = format_image_list(slots.location_positions)
        line = f"LOCATION: {name}"
        if images:
            line += f": {images}"
        if desc.strip():
            line += f": {_bracket(desc)}"
        lines.append(line)
    if slots.character_positions:
        lines.append(f"CHARACTER IMAGES: {format_image_list(slots.character_positions)}")
    for asset in context.character_assets:
        line = f"CHARACTER: {asset.name}"
        if asset.description.strip():
            line += f": {_bracket(asset.description)}"
        lines.append(line)
    for i, position in enumerate(slots.reference_positions, start=1):
        lines.append(f"REF IMAGE {i}: IMAGE {position}: [Additional Reference].")
    return lines


def build_sandwich_prompt(context: GenerationContext, slots: ImageSlots) -> str:
    style_name = (context.style_name or "").strip() or "Custom"
    sections: list[str] = []

    header = f"STYLE: {style_name}"
    if slots.has_style_image:
        header += f" [IMAGE {slots.style_position}]"
    sections.append(header)
    if context.style_description and context.style_description.strip():
        sections.append(_bracket(context.style_description))
    if context.style_negatives and context.style_negatives.strip():
        sections.append(f"NO: {_bracket(context.style_negatives)}")

    setup = _setup_block(context, slots)
    if setup:
        sections.append("SETUP / REFERENCE:\n" + "\n".join(setup))

    subject = ["OUTPUT SUBJECT:"]
    if slots.content_positions:
        subject.append(f"SUBJECT IMAGES: [{format_image_list(slots.content_positions)}]")
    action = context.action.strip() or "The subject in frame."
    subject.append(f"ACTION: {_bracket(action)}")
    if context.dialog.strip():
        subject.append(f'DIALOG: "{context.dialog.strip()}"')
    if context.negative_prompt.strip():
        subject.append(f"NO: {_bracket(context.negative_prompt)}")
    sections.append("\n".join(subject))

    rule = ["[SYSTEM: PRIORITY RULE:"]
    if slots.content_positions:
        rule.append(f"{format_image_list(slots.content_positions)} define the SUBJECT of the OUTPUT.")
    if slots.has_style_image:
        n = slots.style_position
        rule.append(f"Image {n} defines the STYLE for the OUTPUT. IGNORE the subject of Image {n}.")
    else:
        rule.append("Follow the STYLE DESCRIPTION strictly.")
    pct = strength_percent(context.style_strength)
    if pct is not None:
        rule.append(f"Style strength: {pct}%.")
    rule.append("Render the OUTPUT SUBJECT in this STYLE.]")
    sections.append("\n".join(rule))

    return "\n\n".join(sections)


def build_prompt(context: GenerationContext, slots: ImageSlots) -> str:
    if has_style(context):
        return build_sandwich_prompt(context, slots)
    return build_plain_prompt(context, slots)


def truncate_prompt(prompt: str, limit: int) -> str:
    return prompt if len(prompt) <= limit else prompt[:limit]
