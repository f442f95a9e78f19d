"""chopup exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class ChopupError(Exception):
    """Base exception for chopup errors."""


# =============================================================================
# Startup Exceptions
# =============================================================================


class ConfigurationError(ChopupError):
    """Raised when the session cannot be configured.

    Configuration errors are fatal: they are raised before the child process
    is spawned and cause the supervisor to exit with a non-zero code.

    Attributes:
        path: The offending path, if the error concerns one.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and optional path context.

        Args:
            message: Human-readable error message.
            path: The offending path, if the error concerns one.
            cause: The underlying exception, if any.
        """
        super().__init__(message)
        self.path: Path | None = path
        self.cause: Exception | None = cause


class EndpointInUseError(ConfigurationError):
    """Raised when the control socket path is bound by a live listener."""


class EndpointUnwritableError(ConfigurationError):
    """Raised when the control socket cannot be created at the given path."""


class ChildSpawnError(ChopupError):
    """Raised when the wrapped command cannot be started.

    Attributes:
        command: The command that failed to start.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        command: tuple[str, ...] = (),
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and command context."""
        super().__init__(message)
        self.command: tuple[str, ...] = command
        self.cause: Exception | None = cause


# =============================================================================
# Runtime Exceptions
# =============================================================================


class ChildIOError(ChopupError):
    """Raised when reading from or writing to the child's streams fails.

    Attributes:
        pid: Process ID of the child, if one was running.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        pid: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and process context."""
        super().__init__(message)
        self.pid: int | None = pid
        self.cause: Exception | None = cause


class NoSuchProcessError(ChildIOError):
    """Raised when input is sent but no child process is running."""


class WriteFailedError(ChildIOError):
    """Raised when the child's stdin is closed or broken."""


class InputBackpressureError(ChildIOError):
    """Raised when too much earlier input is still waiting for the child to read it."""


class RotationError(ChopupError):
    """Raised when the output sink cannot open the next segment.

    The active segment stays open when this is raised.

    Attributes:
        path: The segment path that could not be opened, if known.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and segment context."""
        super().__init__(message)
        self.path: Path | None = path
        self.cause: Exception | None = cause


class ControlProtocolError(ChopupError):
    """Raised when a control message cannot be decoded.

    Attributes:
        raw: The undecodable message bytes (possibly truncated).
        unknown_command: True when the record was well-formed but named a
            command the server does not know.
    """

    def __init__(
        self,
        message: str,
        *,
        raw: bytes = b"",
        unknown_command: bool = False,
    ) -> None:
        """Initialize with error message and the offending record."""
        super().__init__(message)
        self.raw: bytes = raw
        self.unknown_command: bool = unknown_command


class ControlConnectionError(ChopupError):
    """Raised by the client when the control endpoint cannot be reached.

    Attributes:
        socket_path: The endpoint the client tried to reach.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        socket_path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize with error message and endpoint context."""
        super().__init__(message)
        self.socket_path: Path | None = socket_path
        self.cause: Exception | None = cause


class ShutdownError(ChopupError):
    """Raised when the child process tree could not be fully terminated.

    Attributes:
        pid: Process ID of the child.
        survivors: PIDs still alive after escalation.
    """

    def __init__(
        self,
        message: str,
        *,
        pid: int | None = None,
        survivors: tuple[int, ...] = (),
    ) -> None:
        """Initialize with error message and the surviving processes."""
        super().__init__(message)
        self.pid: int | None = pid
        self.survivors: tuple[int, ...] = survivors
