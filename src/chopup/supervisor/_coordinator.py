"""Lifecycle coordinator for one supervised session.

This module provides the LifecycleCoordinator that brings the output sink,
control server and child up in order, waits for the first terminal event
(child exit, SIGINT/SIGTERM, or a fatal server error), and runs the single
shutdown sequence that every terminal event converges on.
"""

from __future__ import annotations

import contextlib
import signal
import sys
from typing import TYPE_CHECKING, final

import anyio

from chopup.exceptions import ChildSpawnError, ConfigurationError, RotationError, ShutdownError
from chopup.utils import get_null_logger, get_timestamp

from . import _messages
from ._child import ChildSupervisor
from ._models import Session, SessionState, ShutdownReason
from ._output import ConsoleOutputSink
from ._server import ControlServer
from ._sink import SegmentedOutputSink
from ._watcher import watch_and_chop

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Mapping
    from pathlib import Path
    from typing import TextIO

    from structlog.typing import FilteringBoundLogger

    from chopup.config import RunConfig

    from ._models import ChildExit, OutputSegment
    from ._protocol import OutputSink

SERVER_ERROR_EXIT_CODE = 1


@final
class LifecycleCoordinator:
    """Runs one supervised session from startup to teardown.

    State moves STARTING -> RUNNING -> SHUTTING_DOWN -> STOPPED. A failed
    startup goes straight from STARTING to STOPPED after tearing down the
    components that were already up.
    """

    __slots__ = (
        "_child",
        "_config",
        "_handle_signals",
        "_logger",
        "_server",
        "_session",
        "_shutdown_complete",
        "_shutdown_requested",
        "_sink",
        "_stdout",
    )

    def __init__(
        self,
        config: RunConfig,
        *,
        logger: FilteringBoundLogger | None = None,
        stdout: TextIO | None = None,
        passthrough_sink: OutputSink | None = None,
        handle_signals: bool = True,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        """Initialize the coordinator and its components without starting them.

        Args:
            config: Run configuration.
            logger: Diagnostic logger.
            stdout: Stream receiving the protocol lines. Defaults to sys.stdout.
            passthrough_sink: Echo sink used when passthrough is enabled.
                Uses ConsoleOutputSink if None.
            handle_signals: Translate SIGINT/SIGTERM into a shutdown.
            env: Environment of the child. Inherits when None.
            cwd: Working directory of the child.
        """
        self._config = config
        self._logger = (logger or get_null_logger()).bind(component="coordinator")
        self._stdout = stdout
        self._handle_signals = handle_signals

        log_dir = config.resolved_log_dir
        socket_path = config.resolve_socket_path()
        self._session = Session(
            command=config.command,
            log_dir=log_dir,
            log_prefix=config.log_prefix,
            socket_path=socket_path,
            created_at=get_timestamp(),
        )

        self._sink = SegmentedOutputSink(log_dir, config.log_prefix, logger=logger)
        self._sink.add_listener(self._on_segment_closed)

        sinks: list[OutputSink] = [self._sink]
        if config.passthrough:
            sinks.append(passthrough_sink or ConsoleOutputSink())

        self._child = ChildSupervisor(
            config.command,
            sinks,
            cwd=cwd,
            env=env,
            input_queue_size=config.input_queue_size,
            terminate_timeout=config.terminate_timeout,
            logger=logger,
        )
        self._child.on_exit(self._on_child_exit)

        self._server = ControlServer(
            socket_path,
            self._sink,
            self._child,
            idle_timeout=config.idle_timeout,
            logger=logger,
        )
        self._shutdown_requested: anyio.Event | None = None
        self._shutdown_complete = False

    @property
    def session(self) -> Session:
        """Return the session owned by this coordinator."""
        return self._session

    @property
    def state(self) -> SessionState:
        """Return the current lifecycle state."""
        return self._session.state

    @property
    def sink(self) -> SegmentedOutputSink:
        """Return the output sink."""
        return self._sink

    @property
    def server(self) -> ControlServer:
        """Return the control server."""
        return self._server

    @property
    def child(self) -> ChildSupervisor:
        """Return the child supervisor."""
        return self._child

    def _emit(self, line: str) -> None:
        print(line, file=self._stdout or sys.stdout, flush=True)  # noqa: T201

    def _on_segment_closed(self, closed: OutputSegment, active: Path | None) -> None:
        self._session.segments.append(closed)
        self._session.current_segment_path = active

    def _on_child_exit(self, child_exit: ChildExit) -> None:
        self._session.child_exit = child_exit

    def request_shutdown(
        self,
        reason: ShutdownReason,
        signum: signal.Signals | None = None,
    ) -> None:
        """Ask the running session to shut down.

        Only the first request is recorded; it decides the exit code.

        Args:
            reason: What triggered the shutdown.
            signum: The signal received, for ShutdownReason.SIGNAL.
        """
        if self._session.shutdown_reason is not None:
            return
        self._session.shutdown_reason = reason
        self._session.shutdown_signal = signum
        self._logger.info(
            "shutdown_requested",
            reason=reason.value,
            signal=signum.name if signum is not None else None,
        )
        if self._shutdown_requested is not None:
            self._shutdown_requested.set()

    async def run(self) -> int:
        """Run the session until it has fully stopped.

        Returns:
            The supervisor's exit code: the child's exit code when it exited
            first, 128 + signal number when a signal stopped the supervisor,
            or 1 after a fatal control server error.

        Raises:
            ConfigurationError: If the log directory or socket is unusable.
            ChildSpawnError: If the command cannot be executed.
        """
        if self._session.state is not SessionState.STARTING:
            msg = "Session was already run"
            raise ConfigurationError(msg, path=self._session.log_dir)

        self._shutdown_requested = anyio.Event()

        with self._signal_receiver() as signals:
            try:
                await self._start()
            except (ConfigurationError, ChildSpawnError) as e:
                self._logger.error("startup_failed", error=str(e))
                self._session.shutdown_reason = ShutdownReason.STARTUP_FAILED
                with anyio.CancelScope(shield=True):
                    await self._abort_startup()
                self._session.state = SessionState.STOPPED
                raise

            self._session.state = SessionState.RUNNING
            try:
                async with anyio.create_task_group() as tg:
                    if signals is not None:
                        tg.start_soon(self._watch_signals, signals)
                    tg.start_soon(self._serve)
                    tg.start_soon(self._run_child)
                    if self._config.watch:
                        tg.start_soon(self._watch_files)

                    await self._shutdown_requested.wait()
                    with anyio.CancelScope(shield=True):
                        await self._shutdown()
                    tg.cancel_scope.cancel()
            finally:
                with anyio.CancelScope(shield=True):
                    await self._shutdown()
                self._session.exit_code = self._exit_code()
                self._session.state = SessionState.STOPPED

        self._logger.info("session_stopped", exit_code=self._session.exit_code)
        return self._session.exit_code

    @contextlib.contextmanager
    def _signal_receiver(self) -> Iterator[AsyncIterator[signal.Signals] | None]:
        # Installed before startup so an early signal is queued, not fatal.
        if not self._handle_signals:
            yield None
            return
        with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
            yield signals

    async def _start(self) -> None:
        session = self._session

        for path in self._config.watch:
            if not path.exists():
                msg = f"Watch path does not exist: {path}"
                raise ConfigurationError(msg, path=path)

        session.current_segment_path = self._sink.open()

        socket_path = await self._server.listen()
        if not self._config.suppress_socket_path_log:
            self._emit(_messages.socket_path_line(socket_path))

        handle = await self._child.start()
        session.pid = handle.pid
        session.pgid = handle.pgid
        self._emit(_messages.process_ready_line())

        if self._config.show_instructions:
            self._emit(
                _messages.instructions(
                    exec_name=self._config.exec_name,
                    pid=handle.pid,
                    log_dir=session.log_dir,
                    socket_path=socket_path,
                )
            )

    async def _abort_startup(self) -> None:
        # Only components that came up are torn down.
        if self._server.is_listening:
            await self._server.aclose()
        if self._sink.active_path is not None and not self._sink.closed:
            _ = self._sink.finalize()

    async def _watch_signals(self, signals: AsyncIterator[signal.Signals]) -> None:
        async for signum in signals:
            self._logger.info("signal_received", signal=signum.name)
            self.request_shutdown(ShutdownReason.SIGNAL, signum)

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except OSError as e:
            self._logger.error("server_failed", error=str(e))
            self.request_shutdown(ShutdownReason.SERVER_ERROR)

    async def _run_child(self) -> None:
        _ = await self._child.run()
        self.request_shutdown(ShutdownReason.CHILD_EXITED)

    async def _watch_files(self) -> None:
        try:
            await watch_and_chop(
                self._config.watch,
                self._server,
                ignore_dirs=(self._session.log_dir,),
                logger=self._logger,
            )
        except OSError as e:
            self._logger.warning("watch_failed", error=str(e))

    async def _shutdown(self) -> None:
        """Release every resource of the session.

        Safe to call again: each step is idempotent, and a completed
        sequence is not repeated.
        """
        if self._shutdown_complete:
            return
        if self._session.shutdown_reason is None:
            self._session.shutdown_reason = ShutdownReason.SERVER_ERROR
        self._session.state = SessionState.SHUTTING_DOWN
        self._logger.info("shutdown_started", reason=self._session.shutdown_reason.value)

        await self._server.stop_accepting()

        if not self._sink.closed:
            try:
                _ = self._sink.finalize()
            except RotationError as e:
                self._logger.warning("finalize_failed", error=str(e))

        try:
            _ = await self._child.terminate(self._config.terminate_timeout)
        except ShutdownError as e:
            self._logger.error("shutdown_incomplete", survivors=list(e.survivors), error=str(e))

        await self._server.aclose()
        self._shutdown_complete = True

    def _exit_code(self) -> int:
        session = self._session
        match session.shutdown_reason:
            case ShutdownReason.SIGNAL if session.shutdown_signal is not None:
                return 128 + session.shutdown_signal.value
            case ShutdownReason.CHILD_EXITED if session.child_exit is not None:
                return session.child_exit.exit_code
            case _:
                return SERVER_ERROR_EXIT_CODE
