# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""chopup send-input command - writes to a wrapped process's stdin."""

import functools
from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter

from chopup.client import DEFAULT_TIMEOUT, send_input as send_input_to
from chopup.exceptions import ControlConnectionError, ControlProtocolError

from ._shared import ExitCode, OutputFormat, exit_with_error, format_json

app = App(
    name="send-input",
    help="Send text to the stdin of a process wrapped by chopup",
    help_on_error=True,
)


@app.default
def send_input(
    *,
    socket: Annotated[
        Path,
        Parameter(help="Control socket of the running chopup."),
    ],
    input: Annotated[  # noqa: A002
        str,
        Parameter(
            allow_leading_hyphen=True,
            help="Text to send, verbatim.",
        ),
    ],
    newline: Annotated[
        bool,
        Parameter(help="Append a newline to the text."),
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
    """Write text to the wrapped process's stdin.

    No newline is added unless --newline is given.
    """
    text = f"{input}\n" if newline else input

    try:
        response = anyio.run(functools.partial(send_input_to, socket, text, timeout=timeout))
    except ControlConnectionError as e:
        exit_with_error(str(e), ExitCode.ERROR)
    except ControlProtocolError as e:
        exit_with_error(str(e), ExitCode.PROTOCOL_ERROR)

    if not response.status.ok:
        exit_with_error(
            f"{response.status}: {response.message or 'input was not sent'}",
            ExitCode.REJECTED,
        )

    if format == OutputFormat.JSON:
        print(format_json(response.model_dump(mode="json", exclude_none=True)))
        return

    print("Input sent.")
