"""chopup CLI commands."""
# pyright: reportUnusedCallResult=false

from __future__ import annotations

from typing import TYPE_CHECKING

from ._request_logs import app as request_logs_app
from ._run import app as run_app
from ._send_input import app as send_input_app
from ._shared import (
    ExitCode,
    FormattableData,
    OutputFormat,
    exit_with_error,
    format_json,
    get_error_console,
)

if TYPE_CHECKING:
    from cyclopts import App

__all__ = [
    "ExitCode",
    "FormattableData",
    "OutputFormat",
    "exit_with_error",
    "format_json",
    "get_error_console",
    "register_commands",
    "request_logs_app",
    "run_app",
    "send_input_app",
]


def register_commands(app: App) -> None:
    app.command(run_app)
    app.command(request_logs_app)
    app.command(send_input_app)
