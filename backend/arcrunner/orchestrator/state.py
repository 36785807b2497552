"""State machine for clip generation status.

Stored strings and their parsed form:

    ""            -> Idle
    "Generating"  -> Generating
    "Done"        -> Done
    "Error"       -> Error
    "Saved"       -> Saved(version=1)
    "Saved [N]"   -> Saved(version=N)

No state is terminal: any clip, including an archived one, may be sent
back to Generating by a fresh generation request.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

_SAVED_RE = re.compile(r"^Saved(?: \[(\d+)\])?$")


class StatusKind(str, enum.Enum):
    IDLE = ""
    GENERATING = "Generating"
    DONE = "Done"
    ERROR = "Error"
    SAVED = "Saved"


@dataclass(frozen=True)
class ClipStatus:
    """Parsed clip status. ``version`` is only meaningful for SAVED."""

    kind: StatusKind
    version: int = 0

    @classmethod
    def idle(cls) -> "ClipStatus":
        return cls(StatusKind.IDLE)

    @classmethod
    def generating(cls) -> "ClipStatus":
        return cls(StatusKind.GENERATING)

    @classmethod
    def done(cls) -> "ClipStatus":
        return cls(StatusKind.DONE)

    @classmethod
    def error(cls) -> "ClipStatus":
        return cls(StatusKind.ERROR)

    @classmethod
    def saved(cls, version: int = 1) -> "ClipStatus":
        if version < 1:
            raise ValueError(f"Saved version must be >= 1, got {version}")
        return cls(StatusKind.SAVED, version)

    @property
    def is_generating(self) -> bool:
        return self.kind is StatusKind.GENERATING

    def next_archive(self) -> "ClipStatus":
        """Status after the user archives the current result."""
        if self.kind is StatusKind.SAVED:
            return ClipStatus.saved(self.version + 1)
        return ClipStatus.saved(1)

    def __str__(self) -> str:
        if self.kind is StatusKind.SAVED:
            return "Saved" if self.version == 1 else f"Saved [{self.version}]"
        return self.kind.value


GENERATING = str(ClipStatus.generating())
DONE = str(ClipStatus.done())
ERROR = str(ClipStatus.error())


def parse_status(raw: Optional[str]) -> ClipStatus:
    """Parse a stored status string.

    Older rows carry ad-hoc error labels such as ``"Error 500"``; those are
    read as ERROR. Anything else unrecognized is read as IDLE.
    """
    value = (raw or "").strip()
    if not value:
        return ClipStatus.idle()
    if value == StatusKind.GENERATING.value:
        return ClipStatus.generating()
    if value == StatusKind.DONE.value:
        return ClipStatus.done()
    if value.startswith(StatusKind.ERROR.value):
        return ClipStatus.error()

    match = _SAVED_RE.match(value)
    if match:
        return ClipStatus.saved(max(int(match.group(1) or 1), 1))

    logger.warning(f"Unrecognized clip status {value!r}, treating as idle")
    return ClipStatus.idle()


def get_next_status(current: Optional[str]) -> str:
    """Return the status string to store after archiving a result.

    Examples:
        >>> get_next_status("")
        'Saved'
        >>> get_next_status("Saved")
        'Saved [2]'
        >>> get_next_status("Saved [99]")
        'Saved [100]'
    """
    return str(parse_status(current).next_archive())
