"""Tests for clip status parsing and archive versioning."""

import pytest

from arcrunner.orchestrator.state import (
    ClipStatus,
    StatusKind,
    get_next_status,
    parse_status,
)


@pytest.mark.parametrize(
    "current, expected",
    [
        ("", "Saved"),
        (None, "Saved"),
        ("Done", "Saved"),
        ("Saved", "Saved [2]"),
        ("Saved [2]", "Saved [3]"),
        ("Saved [99]", "Saved [100]"),
    ],
)
def test_next_archive_status(current, expected):
    assert get_next_status(current) == expected


def test_parse_known_statuses():
    assert parse_status("").kind is StatusKind.IDLE
    assert parse_status("Generating").is_generating
    assert parse_status("Done").kind is StatusKind.DONE
    assert parse_status("Error").kind is StatusKind.ERROR
    assert parse_status("Saved") == ClipStatus.saved(1)
    assert parse_status("Saved [7]") == ClipStatus.saved(7)


def test_legacy_error_labels_parse_as_error():
    assert parse_status("Error 500").kind is StatusKind.ERROR
    assert parse_status("Error: timeout").kind is StatusKind.ERROR


def test_unrecognized_status_is_idle():
    assert parse_status("Queued?").kind is StatusKind.IDLE


def test_saved_zero_is_read_as_first_version():
    assert parse_status("Saved [0]") == ClipStatus.saved(1)
    assert get_next_status("Saved [0]") == "Saved [2]"


def test_status_strings_round_trip():
    for raw in ("", "Generating", "Done", "Error", "Saved", "Saved [4]"):
        assert str(parse_status(raw)) == raw


def test_saved_version_must_be_positive():
    with pytest.raises(ValueError):
        ClipStatus.saved(0)
