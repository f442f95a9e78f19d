"""Shared utilities for chopup."""

from ._logging import LogFormatType, create_logger, diagnostic_stream, get_null_logger
from ._time import format_segment_stamp, get_timestamp, utc_now

__all__ = [
    "LogFormatType",
    "create_logger",
    "diagnostic_stream",
    "format_segment_stamp",
    "get_null_logger",
    "get_timestamp",
    "utc_now",
]
