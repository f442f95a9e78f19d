"""Data models for the supervisor system.

This module defines the core data types for a supervised session:
- SessionState: Lifecycle states of the coordinator
- ShutdownReason: What triggered the shutdown sequence
- OutputSegment: Immutable record of one closed output file
- ChildExit: How the child process ended
- ChildHandle: Identity of the running child
- Session: Mutable state of one supervisor run
"""

from __future__ import annotations

import signal
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path  # noqa: TC003 - Used in runtime type annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import anyio


class SessionState(StrEnum):
    """Lifecycle states of a supervised session.

    - STARTING: Components are being brought up
    - RUNNING: Child is running and commands are served
    - SHUTTING_DOWN: The single shutdown sequence is in progress
    - STOPPED: Terminal; every resource has been released
    """

    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ShutdownReason(StrEnum):
    """Terminal conditions that converge on the shutdown sequence."""

    CHILD_EXITED = "child_exited"
    SIGNAL = "signal"
    SERVER_ERROR = "server_error"
    STARTUP_FAILED = "startup_failed"


@dataclass(frozen=True, slots=True)
class OutputSegment:
    """Immutable record of one closed output segment.

    Attributes:
        path: Absolute path of the segment file.
        started_at: ISO 8601 timestamp of when the segment was opened.
        ended_at: ISO 8601 timestamp of rotation or final flush.
        byte_count: Number of bytes written to the file.
        final: True for the segment closed during shutdown.
    """

    path: Path
    started_at: str
    ended_at: str
    byte_count: int
    final: bool = False


@dataclass(frozen=True, slots=True)
class ChildExit:
    """How the child process ended.

    Attributes:
        returncode: Raw return code; negative when killed by a signal.
    """

    returncode: int

    @property
    def term_signal(self) -> signal.Signals | None:
        """Return the terminating signal, if the child was killed by one."""
        if self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode)
        except ValueError:
            return None

    @property
    def exit_code(self) -> int:
        """Return the shell-convention exit code (128 + signal number)."""
        if self.returncode < 0:
            return 128 - self.returncode
        return self.returncode


@dataclass(frozen=True, slots=True)
class ChildHandle:
    """Identity of a spawned child.

    Attributes:
        pid: Native process ID.
        pgid: Process group the child leads.
        exited: Event set once the child has exited and was reaped.
    """

    pid: int
    pgid: int
    exited: anyio.Event


@dataclass(slots=True)
class Session:
    """Mutable state of one supervisor run.

    Owned by the LifecycleCoordinator and handed to the other components
    explicitly.

    Attributes:
        command: The wrapped command and its arguments.
        log_dir: Directory receiving the output segments.
        log_prefix: Filename prefix of every segment.
        socket_path: Path of the control socket.
        created_at: ISO 8601 timestamp of session creation.
        state: Current lifecycle state.
        pid: Child process ID while known.
        pgid: Child process group while known.
        current_segment_path: Path of the active output segment.
        child_exit: Exit record once the child has ended.
        shutdown_reason: What triggered shutdown, once it began.
        shutdown_signal: Signal received by the supervisor, if any.
        exit_code: Exit code of the supervisor, once stopped.
        segments: Segments closed so far, in rotation order.
    """

    command: tuple[str, ...]
    log_dir: Path
    log_prefix: str
    socket_path: Path
    created_at: str
    state: SessionState = SessionState.STARTING
    pid: int | None = None
    pgid: int | None = None
    current_segment_path: Path | None = None
    child_exit: ChildExit | None = None
    shutdown_reason: ShutdownReason | None = None
    shutdown_signal: signal.Signals | None = None
    exit_code: int | None = None
    segments: list[OutputSegment] = field(default_factory=list)
