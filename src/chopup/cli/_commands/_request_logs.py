# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""chopup request-logs command - chops a running supervisor's output."""

import functools
from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter

from chopup.client import DEFAULT_TIMEOUT, request_chop
from chopup.exceptions import ControlConnectionError, ControlProtocolError

from ._shared import ExitCode, OutputFormat, exit_with_error, format_json

app = App(
    name="request-logs",
    help="Chop the output of a running chopup into a new file",
    help_on_error=True,
)


@app.default
def request_logs(
    *,
    socket: Annotated[
        Path,
        Parameter(help="Control socket of the running chopup."),
    ],
    pipe: Annotated[
        bool,
        Parameter(help="Also print the content of the chopped segment."),
    ] = False,
    format: Annotated[  # noqa: A002
        OutputFormat,
        Parameter(
            name=["--format", "-f"],
            help="Output format (text, json)",
        ),
    ] = OutputFormat.TEXT,
    timeout: Annotated[
        float,
        Parameter(help="Seconds to wait for the supervisor."),
    ] = DEFAULT_TIMEOUT,
) -> None:
    """Close the current output segment and start a new one.

    Prints the path of the closed segment, which holds everything the
    wrapped command wrote since the previous chop.
    """
    try:
        response = anyio.run(functools.partial(request_chop, socket, timeout=timeout))
    except ControlConnectionError as e:
        exit_with_error(str(e), ExitCode.ERROR)
    except ControlProtocolError as e:
        exit_with_error(str(e), ExitCode.PROTOCOL_ERROR)

    if not response.status.ok or response.path is None:
        exit_with_error(
            f"{response.status}: {response.message or 'chop was not performed'}",
            ExitCode.REJECTED,
        )

    content: str | None = None
    if pipe:
        try:
            content = Path(response.path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            exit_with_error(f"Failed to read {response.path}: {e}", ExitCode.ERROR)

    if format == OutputFormat.JSON:
        data = response.model_dump(mode="json", exclude_none=True)
        if content is not None:
            data["content"] = content
        print(format_json(data))
        return

    print(f"Logs chopped to: {response.path}")
    if content is not None:
        print(content, end="")
