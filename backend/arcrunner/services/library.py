"""Studio library lookups.

Library assets are matched by name only: exact, case-insensitive, on the
trimmed name. Callers are expected to have normalized underscores/spaces
when the clip was written; no fuzzy matching happens here.
"""

import re
from typing import Callable, Iterable, Optional, Protocol

from arcrunner.fields import join_csv, split_csv

_DRIVE_FILE_RE = re.compile(r"/file/d/([a-zA-Z0-9_-]+)")
_DRIVE_ID_RE = re.compile(r"[?&]id=([a-zA-Z0-9_-]+)")


class LibraryAsset(Protocol):
    type: str
    name: str
    description: str
    ref_image_url: str
    negatives: str


def convert_drive_url(url: Optional[str]) -> str:
    """Convert Google Drive share links to direct-download links.

    Direct links and local ``/api/`` media paths are returned unchanged;
    anything unusable becomes an empty string.
    """
    if not url:
        return ""
    if "googleusercontent.com" in url or "export=download" in url:
        return url

    match = _DRIVE_FILE_RE.search(url) or _DRIVE_ID_RE.search(url)
    if match:
        return f"https://drive.google.com/uc?export=download&id={match.group(1)}"

    if url.startswith("http") or url.startswith("/api/"):
        return url
    return ""


def _lookup_key(name: str) -> str:
    return name.strip().lower()


def normalize_asset_urls(value: Optional[str]) -> str:
    """Apply ``convert_drive_url`` to every entry of a stored URL list."""
    return join_csv(convert_drive_url(u) for u in split_csv(value))


def build_library_lookup(items: Iterable[LibraryAsset]) -> Callable[[str], Optional[str]]:
    """Return ``find_library_url(name)`` over ``items``.

    The returned value is the asset's stored (possibly comma-separated)
    URL string. When two assets share a name the first one wins.
    """
    table: dict[str, str] = {}
    for item in items:
        if not item.name:
            continue
        key = _lookup_key(item.name)
        urls = normalize_asset_urls(item.ref_image_url)
        if key not in table and urls:
            table[key] = urls

    def find_library_url(name: str) -> Optional[str]:
        return table.get(_lookup_key(name))

    return find_library_url


def find_library_asset(
    items: Iterable[LibraryAsset],
    name: Optional[str],
    asset_type: Optional[str] = None,
) -> Optional[LibraryAsset]:
    """Find an asset by exact case-insensitive name, optionally by type."""
    if not name or not name.strip():
        return None
    key = _lookup_key(name)
    for item in items:
        if item.name and _lookup_key(item.name) == key:
            if asset_type is None or item.type == asset_type:
                return item
    return None
