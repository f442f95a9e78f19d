"""Configuration models for chopup.

This module defines the Pydantic models describing a supervisor run:
- LogLevel / LogFormat: diagnostic logging enums
- LoggingConfig: diagnostic logging settings
- RunConfig: everything the lifecycle coordinator needs to start a session
"""

import os
from enum import StrEnum
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(StrEnum):
    """Log level threshold values.

    Values are ordered from most verbose (debug) to least verbose (error).
    """

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogFormat(StrEnum):
    """Log output format values."""

    JSON = "json"
    TEXT = "text"


class LoggingConfig(BaseModel):
    """Diagnostic logging configuration.

    Diagnostics never go to stdout, which carries the protocol lines.

    Attributes:
        level: Log level threshold.
        format: Log output format.
        file: Path to log file (empty writes to stderr).
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="ignore")

    level: LogLevel = LogLevel.WARNING
    format: LogFormat = LogFormat.TEXT
    file: str = ""


class RunConfig(BaseModel):
    """Configuration for one supervised session.

    Attributes:
        command: The wrapped command and its arguments.
        log_dir: Directory receiving the output segments.
        log_prefix: Filename prefix for every segment.
        socket_path: Control socket path. Derived from log_dir and the
            supervisor PID when unset.
        watch: Paths whose changes trigger a chop.
        passthrough: Echo the child's output to the supervisor's console.
        terminate_timeout: Seconds to wait for the child tree to exit after
            SIGTERM before escalating to SIGKILL.
        input_queue_size: Send-input texts that may wait for the child to
            read its stdin before further input is refused.
        idle_timeout: Seconds a control connection may stay silent.
        suppress_instructions: Do not print the usage banner after startup.
        suppress_socket_path_log: Do not print the CHOPUP_SOCKET_PATH line.
        exec_name: Program name shown in the usage banner.
        test_mode: Quiet mode used by test harnesses.
        logging: Diagnostic logging settings.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    command: tuple[str, ...]
    log_dir: Path = Path("chopup-logs")
    log_prefix: str = "log_"
    socket_path: Path | None = None
    watch: tuple[Path, ...] = ()
    passthrough: bool = False
    terminate_timeout: float = Field(default=5.0, gt=0)
    input_queue_size: int = Field(default=16, gt=0)
    idle_timeout: float = Field(default=30.0, gt=0)
    suppress_instructions: bool = False
    suppress_socket_path_log: bool = False
    exec_name: str = "chopup"
    test_mode: bool = False
    logging: LoggingConfig = LoggingConfig()

    @field_validator("command")
    @classmethod
    def _require_command(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value or not value[0]:
            msg = "a command to run is required"
            raise ValueError(msg)
        return value

    @field_validator("log_prefix")
    @classmethod
    def _reject_separators(cls, value: str) -> str:
        if os.sep in value or (os.altsep and os.altsep in value):
            msg = "log prefix must not contain path separators"
            raise ValueError(msg)
        return value

    @property
    def resolved_log_dir(self) -> Path:
        """Return the absolute log directory."""
        return self.log_dir.expanduser().resolve()

    def resolve_socket_path(self, pid: int | None = None) -> Path:
        """Return the control socket path for this run.

        Args:
            pid: Supervisor process ID used for the derived name. Defaults
                to the current process.

        Returns:
            The configured socket path, or ``<log_dir>/chopup-<pid>.sock``.
        """
        if self.socket_path is not None:
            return self.socket_path.expanduser().resolve()
        effective_pid = os.getpid() if pid is None else pid
        return self.resolved_log_dir / f"chopup-{effective_pid}.sock"

    @property
    def show_instructions(self) -> bool:
        """Return whether the usage banner should be printed."""
        return not (self.suppress_instructions or self.test_mode)
