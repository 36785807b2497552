"""
Local media store for arcrunner.

Holds user uploads and archived generation results on the local filesystem
and maps them to the ``/api/media/...`` URLs the dashboard serves.
Implements path traversal protection on every lookup.
"""
import re
from pathlib import Path

from arcrunner.config import settings

MEDIA_URL_PREFIX = "/api/media/"

_UNSAFE_CHARS = re.compile(r"[^\w .\-\[\]()]")


class MediaStore:
    """
    Manage locally stored media.

    Layout:
    - {base_dir}/uploads/ - Reference images uploaded by the user
    - {base_dir}/generated/ - Archived generation results
    """

    def __init__(self, base_dir: str | Path | None = None):
        """
        Initialize MediaStore with base directory.

        Args:
            base_dir: Root directory for all media.
                     If None, uses settings.storage.media_dir
        """
        if base_dir is None:
            base_dir = settings.storage.media_dir

        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        (self.base_dir / "uploads").mkdir(exist_ok=True)
        (self.base_dir / "generated").mkdir(exist_ok=True)

    def resolve(self, relative: str) -> Path:
        """
        Resolve a path relative to the media root.

        Raises:
            ValueError: If the path escapes base_dir (traversal attack)
        """
        path = (self.base_dir / relative.lstrip("/")).resolve()
        if not path.is_relative_to(self.base_dir):
            raise ValueError("Invalid media path")
        return path

    @staticmethod
    def is_local_url(url: str) -> bool:
        return url.startswith(MEDIA_URL_PREFIX)

    def local_path_for(self, url: str) -> Path | None:
        """
        Map an ``/api/media/...`` URL to a file path.

        Returns None for remote URLs.
        """
        if not self.is_local_url(url):
            return None
        return self.resolve(url[len(MEDIA_URL_PREFIX):])

    def url_for(self, path: Path) -> str:
        relative = path.resolve().relative_to(self.base_dir)
        return MEDIA_URL_PREFIX + relative.as_posix()

    def save_bytes(self, folder: str, filename: str, data: bytes) -> Path:
        """
        Write media into ``folder`` ('uploads' or 'generated').

        Args:
            folder: Subdirectory name
            filename: Target filename; unsafe characters are replaced
            data: File contents

        Returns:
            Path to the saved file
        """
        safe_name = _UNSAFE_CHARS.sub("_", filename).strip() or "media"
        target = self.resolve(f"{folder}/{safe_name}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def unique_name(self, folder: str, stem: str, extension: str) -> str:
        """
        Return ``stem.ext``, or ``stem NN.ext`` when that name is taken.
        """
        stem = _UNSAFE_CHARS.sub("_", stem).strip() or "media"
        candidate = f"{stem}{extension}"
        counter = 2
        while self.resolve(f"{folder}/{candidate}").exists():
            candidate = f"{stem} {counter:02d}{extension}"
            counter += 1
        return candidate
