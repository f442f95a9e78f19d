"""Timestamp helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pendulum

if TYPE_CHECKING:
    from pendulum import DateTime

SEGMENT_STAMP_FORMAT = "YYYYMMDD[T]HHmmss.SSSSSS[Z]"


def utc_now() -> DateTime:
    """Return the current time in UTC."""
    return pendulum.now("UTC")


def get_timestamp() -> str:
    """Get current timestamp in ISO 8601 format."""
    return utc_now().to_iso8601_string()


def format_segment_stamp(moment: DateTime) -> str:
    """Format a moment for use in a segment filename.

    The format sorts lexicographically and contains no characters that are
    special on common filesystems.

    Args:
        moment: The moment to format.

    Returns:
        A string like ``20261018T093015.123456Z``.
    """
    return moment.in_timezone("UTC").format(SEGMENT_STAMP_FORMAT)
