# pyright: reportUnusedCallResult=false
# ruff: noqa: TC003  # Path needed at runtime for cyclopts parameter parsing
"""chopup run command - wraps a process and serves chop/send-input."""

from pathlib import Path
from typing import Annotated

import anyio
from cyclopts import App, Parameter

from chopup.exceptions import ChildSpawnError, ConfigurationError

from ._shared import ExitCode, exit_with_error

app = App(
    name="run",
    help="Run a command, capturing its output into choppable log files",
    help_on_error=True,
)


@app.default
def run(  # noqa: PLR0913
    *command: Annotated[
        str,
        Parameter(
            allow_leading_hyphen=True,
            help="Command to wrap and its arguments (put them after --).",
        ),
    ],
    log_dir: Annotated[
        Path | None,
        Parameter(help="Directory for the output segments [default: ./chopup-logs]."),
    ] = None,
    log_prefix: Annotated[
        str | None,
        Parameter(help="Filename prefix of every segment [default: log_]."),
    ] = None,
    socket_path: Annotated[
        Path | None,
        Parameter(help="Control socket path [default: <log-dir>/chopup-<pid>.sock]."),
    ] = None,
    watch: Annotated[
        list[Path] | None,
        Parameter(help="Chop whenever files under this path change. Repeatable."),
    ] = None,
    passthrough: Annotated[
        bool,
        Parameter(help="Echo the wrapped command's output to this terminal."),
    ] = False,
    terminate_timeout: Annotated[
        float | None,
        Parameter(help="Seconds to wait after SIGTERM before SIGKILL [default: 5]."),
    ] = None,
    suppress_instructions: Annotated[
        bool,
        Parameter(help="Do not print the usage banner."),
    ] = False,
    verbose: Annotated[
        bool,
        Parameter(help="Write debug diagnostics."),
    ] = False,
    log_file: Annotated[
        Path | None,
        Parameter(help="Write diagnostics to this file instead of stderr."),
    ] = None,
) -> None:
    """Wrap a command and capture its output.

    Prints CHOPUP_SOCKET_PATH=<path> once the control socket is bound and
    CHOPUP_PROCESS_READY once the command is running. Exits with the
    command's exit code, or 128 + signal number when interrupted.
    """
    from chopup.config import load_run_config
    from chopup.supervisor import LifecycleCoordinator
    from chopup.utils import create_logger, diagnostic_stream

    logging_overrides: dict[str, object] = {}
    if verbose:
        logging_overrides["level"] = "debug"
    if log_file is not None:
        logging_overrides["file"] = str(log_file)

    try:
        config = load_run_config(
            command=tuple(command),
            log_dir=log_dir,
            log_prefix=log_prefix,
            socket_path=socket_path,
            watch=tuple(watch) if watch else None,
            passthrough=passthrough or None,
            terminate_timeout=terminate_timeout,
            suppress_instructions=suppress_instructions or None,
            logging=logging_overrides or None,
        )
    except ConfigurationError as e:
        exit_with_error(str(e))

    with diagnostic_stream(config.logging.file) as log_stream:
        logger = create_logger(
            level=config.logging.level.value,
            log_format=config.logging.format.value,  # type: ignore[arg-type]
            stream=log_stream,
        )
        coordinator = LifecycleCoordinator(config, logger=logger)

        try:
            exit_code = anyio.run(coordinator.run)
        except (ConfigurationError, ChildSpawnError) as e:
            exit_with_error(str(e), ExitCode.ERROR)

    raise SystemExit(exit_code)
