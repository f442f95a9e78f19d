"""Logging utilities for chopup.

This module provides standalone structlog logger factories that write
JSON-formatted or text-formatted diagnostics to stderr or to a file. Each
logger is self-contained and does not modify global structlog configuration,
so the supervisor's stdout stays reserved for protocol lines.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from os import getenv
from pathlib import Path
from typing import TYPE_CHECKING, Literal, TextIO, cast

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

    from structlog.typing import FilteringBoundLogger

LogFormatType = Literal["json", "text"]


def _log_level_from_string(level: str, *, respect_env: bool = False) -> int:
    """Convert a log level string to a logging level integer.

    Args:
        level: Log level string (debug, info, warning, error).
        respect_env: If True, CHOPUP_DEBUG overrides to DEBUG level.

    Returns:
        The logging level as an integer.
    """
    if respect_env and getenv("CHOPUP_DEBUG", None):
        return logging.DEBUG

    log_levels = logging.getLevelNamesMapping()
    return log_levels.get(level.upper(), logging.INFO)


def _create_logger(
    *,
    stream: TextIO | None = None,
    log_level: int = logging.WARNING,
    log_format: LogFormatType = "text",
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create a standalone structlog logger.

    Args:
        stream: Text stream to write to. Defaults to stderr.
        log_level: Minimum level that is emitted.
        log_format: Output format, either "json" or "text".

    Returns:
        A configured FilteringBoundLogger instance.
    """
    target = stream if stream is not None else sys.stderr

    processors: list[structlog.typing.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        # Text format: "timestamp [level] event key=value ..."
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    wrapper_class = structlog.make_filtering_bound_logger(log_level)

    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            structlog.WriteLoggerFactory(file=target)(),
            processors=processors,
            wrapper_class=wrapper_class,
            context_class=dict,
        ),
    )


def create_logger(
    *,
    level: str = "warning",
    log_format: LogFormatType = "text",
    stream: TextIO | None = None,
    **context: object,
) -> "FilteringBoundLogger":  # noqa: UP037
    """Create the supervisor's diagnostic logger.

    The log level can be overridden by environment variables:
    - CHOPUP_DEBUG: If set, enables DEBUG level logging regardless of config

    Args:
        level: Log level threshold (debug, info, warning, error).
        log_format: Output format, either "json" or "text".
        stream: Stream receiving the diagnostics. Defaults to stderr; see
            diagnostic_stream() for logging to a file.
        **context: Key/value pairs bound to every entry.

    Returns:
        A FilteringBoundLogger instance.
    """
    logger = _create_logger(
        stream=stream,
        log_level=_log_level_from_string(level, respect_env=True),
        log_format=log_format,
    )
    if context:
        return logger.bind(**context)
    return logger


@contextlib.contextmanager
def diagnostic_stream(log_file: str = "") -> Iterator[TextIO]:
    """Open the stream diagnostics are written to.

    Args:
        log_file: Path to a log file, opened in append mode with its parent
            directories created. Empty means stderr.

    Yields:
        The open log file, or stderr. The log file is closed when the block
        exits; stderr is left open.
    """
    if not log_file:
        yield sys.stderr
        return

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a") as handle:
        yield handle


def get_null_logger() -> "FilteringBoundLogger":  # noqa: UP037
    """Return a logger that drops everything.

    Used as the default for components constructed without a logger.
    """
    return cast(
        "FilteringBoundLogger",
        structlog.wrap_logger(
            structlog.WriteLoggerFactory(file=sys.stderr)(),
            processors=[structlog.dev.ConsoleRenderer(colors=False)],
            wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL + 10),
            context_class=dict,
        ),
    )
