"""Parsing helpers for the comma-separated columns inherited from the sheet era.

Everything below the persistence boundary works with ordered lists; these
helpers are the only place that splits or joins the stored strings.
"""

from typing import Iterable, Optional


def split_csv(value: Optional[str]) -> list[str]:
    """Split a comma-separated field, trimming entries and dropping empties."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def join_csv(values: Iterable[str]) -> str:
    """Join values back into the stored comma-separated form."""
    return ",".join(v for v in values if v)

