"""Resolve the reference images a clip should be generated with.

Pure: the library lookup is injected, so the database-backed dispatcher
and in-memory tests share the same resolution logic.
"""

from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from arcrunner.fields import join_csv, split_csv

ResolveMode = Literal["single", "all"]


@dataclass(frozen=True)
class ClipReferenceSource:
    """The clip fields the resolver reads.

    ``explicit_ref_urls`` wins whenever it is not None, even when it is an
    empty string; ``ref_image_urls`` is only the legacy fallback.
    """

    character: Optional[str] = None
    location: Optional[str] = None
    explicit_ref_urls: Optional[str] = None
    ref_image_urls: Optional[str] = None

    @classmethod
    def from_clip(cls, clip) -> "ClipReferenceSource":
        return cls(
            character=clip.character,
            location=clip.location,
            explicit_ref_urls=clip.explicit_ref_urls,
            ref_image_urls=clip.ref_image_urls,
        )


@dataclass
class ResolvedReferences:
    explicit_refs: str
    explicit_urls: list[str] = field(default_factory=list)
    library_urls: list[str] = field(default_factory=list)
    character_image_urls: list[str] = field(default_factory=list)
    location_image_urls: list[str] = field(default_factory=list)

    @property
    def full_ref_urls(self) -> list[str]:
        """Library-derived URLs first, then explicit URLs."""
        return self.library_urls + self.explicit_urls

    @property
    def full_refs(self) -> str:
        return join_csv(self.full_ref_urls)


def resolve_clip_images(
    clip: ClipReferenceSource,
    find_library_url: Callable[[str], Optional[str]],
    mode: ResolveMode = "single",
) -> ResolvedReferences:
    """Resolve library and explicit reference images for a clip.

    Character names are resolved left to right, then the single location.
    In ``single`` mode only the first URL of a multi-image asset is used;
    ``all`` takes every URL.

    A library URL that the user also listed explicitly is not repeated in
    the library-derived list, but the explicit list is never altered.
    """
    if clip.explicit_ref_urls is not None:
        explicit_str = clip.explicit_ref_urls
    else:
        explicit_str = clip.ref_image_urls or ""
    explicit_urls = split_csv(explicit_str)

    result = ResolvedReferences(explicit_refs=explicit_str, explicit_urls=explicit_urls)

    def add(url: str, target: list[str]) -> None:
        if url not in target:
            target.append(url)
        if url not in explicit_urls and url not in result.library_urls:
            result.library_urls.append(url)

    def resolve_name(name: str, target: list[str]) -> None:
        stored = find_library_url(name)
        urls = split_csv(stored)
        if mode == "single":
            urls = urls[:1]
        for url in urls:
            add(url, target)

    for name in split_csv(clip.character):
        resolve_name(name, result.character_image_urls)

    location = (clip.location or "").strip()
    if location:
        resolve_name(location, result.location_image_urls)

    return result
