"""Segmented output sink.

This module provides the sink that durably captures everything the child
writes, partitioned into segments that are rotated on demand ("chopped").

stdout and stderr are captured as one interleaved stream, in the order the
chunks were read from the pipes. Segment files are named
``{prefix}{timestamp}.log`` inside the log directory; when a name would
collide with one already used, ``-1``, ``-2``, ... is appended before the
suffix.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, final

from chopup.exceptions import ChildIOError, ConfigurationError, RotationError
from chopup.utils import format_segment_stamp, get_null_logger, utc_now

from ._models import OutputSegment

if TYPE_CHECKING:
    from pendulum import DateTime
    from structlog.typing import FilteringBoundLogger

    from ._protocol import StreamName

SEGMENT_SUFFIX = ".log"
DEFAULT_TAIL_BYTES = 64 * 1024

SegmentListener = Callable[[OutputSegment, Path | None], None]


@final
class SegmentedOutputSink:
    """Writes child output to the active segment and an in-memory tail.

    Exactly one segment is active between ``open()`` and ``finalize()``.
    ``append``, ``rotate`` and ``finalize`` never suspend, so under a single
    event loop each call is atomic with respect to the others.

    Attributes:
        log_dir: Directory receiving the segment files.
        prefix: Filename prefix of every segment.
    """

    __slots__ = (
        "_active_path",
        "_active_started",
        "_byte_count",
        "_clock",
        "_degraded",
        "_finalized",
        "_handle",
        "_listeners",
        "_logger",
        "_segments",
        "_tail",
        "_tail_limit",
        "_used_paths",
        "log_dir",
        "prefix",
    )

    def __init__(
        self,
        log_dir: Path,
        prefix: str = "log_",
        *,
        tail_bytes: int = DEFAULT_TAIL_BYTES,
        logger: FilteringBoundLogger | None = None,
        clock: Callable[[], DateTime] = utc_now,
    ) -> None:
        """Initialize the sink without touching the filesystem.

        Args:
            log_dir: Directory receiving the segment files.
            prefix: Filename prefix of every segment.
            tail_bytes: Size of the in-memory tail buffer.
            logger: Diagnostic logger.
            clock: Source of the current time (UTC).
        """
        self.log_dir = log_dir
        self.prefix = prefix
        self._tail_limit = tail_bytes
        self._tail = bytearray()
        self._logger = (logger or get_null_logger()).bind(component="sink")
        self._clock = clock
        self._handle: BinaryIO | None = None
        self._active_path: Path | None = None
        self._active_started: DateTime | None = None
        self._byte_count = 0
        self._segments: list[OutputSegment] = []
        self._used_paths: set[Path] = set()
        self._listeners: list[SegmentListener] = []
        self._degraded = False
        self._finalized = False

    @property
    def active_path(self) -> Path | None:
        """Return the path of the active segment, None before open or after finalize."""
        return self._active_path

    @property
    def segments(self) -> tuple[OutputSegment, ...]:
        """Return the closed segments in rotation order."""
        return tuple(self._segments)

    @property
    def degraded(self) -> bool:
        """Return True once a disk write has failed."""
        return self._degraded

    @property
    def closed(self) -> bool:
        """Return True once the sink has been finalized."""
        return self._finalized

    def tail(self) -> bytes:
        """Return the most recent output, regardless of segment boundaries."""
        return bytes(self._tail)

    def add_listener(self, listener: SegmentListener) -> None:
        """Register a callback invoked with each closed segment and the new active path."""
        self._listeners.append(listener)

    def open(self) -> Path:
        """Validate the log directory and open the first segment.

        Returns:
            The path of the first active segment.

        Raises:
            ConfigurationError: If the directory cannot be created, is not a
                directory, or is not writable.
        """
        if self._handle is not None:
            msg = "Output sink is already open"
            raise ConfigurationError(msg, path=self.log_dir)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Failed to create log directory {self.log_dir}: {e}"
            raise ConfigurationError(msg, path=self.log_dir, cause=e) from e

        if not self.log_dir.is_dir():
            msg = f"Log directory path is not a directory: {self.log_dir}"
            raise ConfigurationError(msg, path=self.log_dir)

        if not os.access(self.log_dir, os.W_OK | os.X_OK):
            msg = f"Log directory is not writable: {self.log_dir}"
            raise ConfigurationError(msg, path=self.log_dir)

        now = self._clock()
        try:
            path, handle = self._open_next(now)
        except RotationError as e:
            msg = f"Failed to open first output segment in {self.log_dir}: {e}"
            raise ConfigurationError(msg, path=self.log_dir, cause=e) from e

        self._activate(path, handle, now)
        self._logger.debug("segment_opened", path=str(path))
        return path

    def append(self, data: bytes, stream: StreamName) -> None:
        """Append a chunk of child output.

        The chunk always lands in the tail buffer. A failed disk write is
        reported, but capture continues in memory.

        Args:
            data: Raw bytes as read from the pipe.
            stream: Which output stream the bytes came from.

        Raises:
            ChildIOError: If the chunk could not be written to the segment.
        """
        if not data:
            return

        self._tail.extend(data)
        overflow = len(self._tail) - self._tail_limit
        if overflow > 0:
            del self._tail[:overflow]

        if self._handle is None:
            return

        try:
            _ = self._handle.write(data)
            self._handle.flush()
        except OSError as e:
            self._degraded = True
            msg = f"Failed to write {len(data)} bytes of {stream} to {self._active_path}: {e}"
            raise ChildIOError(msg, cause=e) from e
        self._byte_count += len(data)

    def rotate(self) -> OutputSegment:
        """Close the active segment and open a new one.

        The next segment is opened before the active one is closed, so a
        failure leaves the active segment open and capturing.

        Returns:
            The closed segment, holding everything appended since the
            previous rotation.

        Raises:
            RotationError: If the sink is not open or the next segment
                cannot be created.
        """
        if self._handle is None or self._active_path is None:
            msg = "Output capture is not open"
            raise RotationError(msg, path=self._active_path)

        try:
            self._handle.flush()
        except OSError as e:
            self._degraded = True
            msg = f"Failed to flush {self._active_path}: {e}"
            raise RotationError(msg, path=self._active_path, cause=e) from e

        now = self._clock()
        next_path, next_handle = self._open_next(now)
        closed = self._close_active(now, final=False)
        self._activate(next_path, next_handle, now)
        self._logger.info(
            "segment_rotated",
            closed=str(closed.path),
            byte_count=closed.byte_count,
            active=str(next_path),
        )
        self._notify(closed, next_path)
        return closed

    def finalize(self) -> OutputSegment:
        """Close the active segment and mark capture as finished.

        Returns:
            The final segment.

        Raises:
            RotationError: If the sink was never opened or was already finalized.
        """
        if self._finalized or self._handle is None:
            msg = "Output capture is already closed"
            raise RotationError(msg, path=self._active_path)

        closed = self._close_active(self._clock(), final=True)
        self._finalized = True
        self._logger.info(
            "segment_finalized",
            path=str(closed.path),
            byte_count=closed.byte_count,
        )
        self._notify(closed, None)
        return closed

    def _open_next(self, now: DateTime) -> tuple[Path, BinaryIO]:
        stamp = format_segment_stamp(now)
        attempt = 0
        while True:
            disambiguator = f"-{attempt}" if attempt else ""
            path = self.log_dir / f"{self.prefix}{stamp}{disambiguator}{SEGMENT_SUFFIX}"
            attempt += 1
            if path in self._used_paths:
                continue
            try:
                handle = path.open("xb")
            except FileExistsError:
                continue
            except OSError as e:
                msg = f"Failed to open output segment {path}: {e}"
                raise RotationError(msg, path=path, cause=e) from e
            self._used_paths.add(path)
            return path, handle

    def _activate(self, path: Path, handle: BinaryIO, now: DateTime) -> None:
        self._handle = handle
        self._active_path = path
        self._active_started = now
        self._byte_count = 0

    def _close_active(self, now: DateTime, *, final: bool) -> OutputSegment:
        if self._handle is None or self._active_path is None or self._active_started is None:
            msg = "No active segment"
            raise RotationError(msg)

        try:
            self._handle.close()
        except OSError as e:
            # The record is still produced; the file may be short.
            self._degraded = True
            self._logger.warning(
                "segment_close_failed",
                path=str(self._active_path),
                error=str(e),
            )

        segment = OutputSegment(
            path=self._active_path,
            started_at=self._active_started.to_iso8601_string(),
            ended_at=now.to_iso8601_string(),
            byte_count=self._byte_count,
            final=final,
        )
        self._segments.append(segment)
        self._handle = None
        self._active_path = None
        self._active_started = None
        self._byte_count = 0
        return segment

    def _notify(self, closed: OutputSegment, active: Path | None) -> None:
        for listener in self._listeners:
            listener(closed, active)
