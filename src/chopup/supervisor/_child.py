"""Child supervisor for the wrapped process.

This module provides the ChildSupervisor class that spawns the wrapped
command, streams its output into the output sinks, forwards input to it, and
terminates it together with its descendants.
"""

from __future__ import annotations

import functools
import subprocess
from typing import TYPE_CHECKING, final

import anyio
import anyio.abc

from chopup.exceptions import (
    ChildSpawnError,
    InputBackpressureError,
    NoSuchProcessError,
    ShutdownError,
    WriteFailedError,
)
from chopup.utils import get_null_logger

from ._killtree import KillResult, kill_tree
from ._models import ChildExit, ChildHandle

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
    from structlog.typing import FilteringBoundLogger

    from ._protocol import OutputSink, StreamName

EXIT_POLL_INTERVAL = 0.05
DEFAULT_INPUT_QUEUE_SIZE = 16


@final
class ChildSupervisor:
    """Owns the OS-level child process and its I/O streams.

    The child is started in a new session, so it leads its own process
    group; termination signals that group as well as the process tree.

    Attributes:
        command: Command and arguments to execute.
        input_queue_size: Inputs that may wait behind a write the child has
            not consumed yet before ``send_input`` refuses more.
        terminate_timeout: Default grace period before SIGKILL.
        drain_timeout: Seconds to keep reading output after the child exited,
            for descendants that still hold the pipes open.
    """

    __slots__ = (
        "_cwd",
        "_env",
        "_exit",
        "_exit_callbacks",
        "_handle",
        "_input_error",
        "_inputs",
        "_logger",
        "_pending_inputs",
        "_process",
        "_sinks",
        "command",
        "drain_timeout",
        "input_queue_size",
        "terminate_timeout",
    )

    def __init__(
        self,
        command: Sequence[str],
        sinks: Sequence[OutputSink],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_queue_size: int = DEFAULT_INPUT_QUEUE_SIZE,
        terminate_timeout: float = 5.0,
        drain_timeout: float = 0.5,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the child supervisor.

        Args:
            command: Command and arguments to execute.
            sinks: Sinks receiving every chunk of output, in order.
            cwd: Working directory for the process.
            env: Full environment for the process. Inherits when None.
            input_queue_size: Pending inputs allowed before refusing more.
            terminate_timeout: Default grace period before SIGKILL.
            drain_timeout: Seconds to keep reading output after exit.
            logger: Diagnostic logger.
        """
        self.command = tuple(command)
        self.input_queue_size = input_queue_size
        self.terminate_timeout = terminate_timeout
        self.drain_timeout = drain_timeout
        self._sinks = tuple(sinks)
        self._cwd = cwd
        self._env = dict(env) if env is not None else None
        self._logger = (logger or get_null_logger()).bind(component="child")
        self._process: anyio.abc.Process | None = None
        self._handle: ChildHandle | None = None
        self._exit: ChildExit | None = None
        self._exit_callbacks: list[Callable[[ChildExit], None]] = []
        self._inputs: MemoryObjectSendStream[bytes] | None = None
        self._pending_inputs: MemoryObjectReceiveStream[bytes] | None = None
        self._input_error: Exception | None = None

    @property
    def pid(self) -> int | None:
        """Return the process ID if started, None otherwise."""
        return self._handle.pid if self._handle is not None else None

    @property
    def handle(self) -> ChildHandle | None:
        """Return the handle of the spawned child, if any."""
        return self._handle

    @property
    def exit(self) -> ChildExit | None:
        """Return how the child ended, None while it runs."""
        return self._exit

    def is_running(self) -> bool:
        """Check if the child has been started and has not exited."""
        return self._process is not None and self._exit is None

    def on_exit(self, callback: Callable[[ChildExit], None]) -> None:
        """Register a callback invoked exactly once when the child exits."""
        self._exit_callbacks.append(callback)

    async def start(self) -> ChildHandle:
        """Spawn the child process.

        Does not wait for the process to complete - use run() for that.

        Returns:
            The handle of the spawned child.

        Raises:
            ChildSpawnError: If the command is empty, was already started,
                or cannot be executed.
        """
        if not self.command:
            msg = "Cannot spawn child process: command is empty"
            raise ChildSpawnError(msg, command=self.command)

        if self._process is not None:
            msg = f"Child process already started (pid={self.pid})"
            raise ChildSpawnError(msg, command=self.command)

        try:
            self._process = await anyio.open_process(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self._cwd,
                env=self._env,
                start_new_session=True,
            )
        except OSError as e:
            msg = f"Failed to start '{' '.join(self.command)}': {e}"
            raise ChildSpawnError(msg, command=self.command, cause=e) from e

        pid = self._process.pid
        # start_new_session makes the child the leader of a new group.
        self._handle = ChildHandle(pid=pid, pgid=pid, exited=anyio.Event())
        self._inputs, self._pending_inputs = anyio.create_memory_object_stream[bytes](
            self.input_queue_size
        )
        self._logger.info("child_started", pid=pid, command=list(self.command))
        return self._handle

    async def _pump(
        self,
        stream: anyio.abc.ByteReceiveStream,
        stream_name: StreamName,
        done: anyio.Event,
    ) -> None:
        """Copy chunks from one output pipe into every sink.

        Args:
            stream: The pipe to read from.
            stream_name: Name of the stream ("stdout" or "stderr").
            done: Event set once the pipe reached EOF or failed.
        """
        try:
            async for chunk in stream:
                for sink in self._sinks:
                    try:
                        sink.append(chunk, stream_name)
                    except Exception as e:  # noqa: BLE001
                        # Capture degrades, the child keeps running.
                        self._logger.warning(
                            "output_capture_failed",
                            stream=stream_name,
                            sink=type(sink).__name__,
                            error=str(e),
                        )
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._logger.debug("output_stream_closed", stream=stream_name)
        finally:
            done.set()

    async def run(self) -> ChildExit:
        """Stream the child's output until it exits.

        Starts the child if not already started. Output keeps being read for
        ``drain_timeout`` seconds after exit, then the pipes are closed.

        Returns:
            How the child ended.

        Raises:
            ChildSpawnError: If the child cannot be started.
        """
        if self._process is None:
            _ = await self.start()

        process = self._process
        handle = self._handle
        if process is None or handle is None:
            msg = "Child process is None after start"
            raise ChildSpawnError(msg, command=self.command)

        pumps_done: list[anyio.Event] = []
        async with anyio.create_task_group() as tg:
            if process.stdout is not None:
                stdout_done = anyio.Event()
                pumps_done.append(stdout_done)
                tg.start_soon(self._pump, process.stdout, "stdout", stdout_done)

            if process.stderr is not None:
                stderr_done = anyio.Event()
                pumps_done.append(stderr_done)
                tg.start_soon(self._pump, process.stderr, "stderr", stderr_done)

            if process.stdin is not None and self._pending_inputs is not None:
                tg.start_soon(self._write_inputs, process.stdin, self._pending_inputs)

            returncode = await self._wait_for_exit(process)

            with anyio.move_on_after(self.drain_timeout):
                for done in pumps_done:
                    await done.wait()
            drained = all(done.is_set() for done in pumps_done)
            tg.cancel_scope.cancel()

        if self._inputs is not None:
            self._inputs.close()

        with anyio.CancelScope(shield=True):
            if drained:
                await process.aclose()
            else:
                # Descendants still hold the output pipes open.
                self._logger.debug("output_pipes_held_open", pid=handle.pid)
                if process.stdin is not None:
                    await process.stdin.aclose()

        return self._record_exit(ChildExit(returncode=returncode))

    async def _wait_for_exit(self, process: anyio.abc.Process) -> int:
        # wait() also waits for the output pipes to close, which descendants
        # of the child may keep open long after the child itself exited.
        while process.returncode is None:
            await anyio.sleep(EXIT_POLL_INTERVAL)
        return process.returncode

    def _record_exit(self, child_exit: ChildExit) -> ChildExit:
        if self._exit is not None:
            return self._exit

        self._exit = child_exit
        self._logger.info(
            "child_exited",
            pid=self.pid,
            returncode=child_exit.returncode,
            exit_code=child_exit.exit_code,
        )
        if self._handle is not None:
            self._handle.exited.set()
        for callback in self._exit_callbacks:
            callback(child_exit)
        return child_exit

    async def _write_inputs(
        self,
        stdin: anyio.abc.ByteSendStream,
        pending: MemoryObjectReceiveStream[bytes],
    ) -> None:
        """Write queued inputs to the child's stdin, one at a time, in order."""
        async with pending:
            async for data in pending:
                try:
                    await stdin.send(data)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as e:
                    self._input_error = e
                    self._logger.warning("input_write_failed", pid=self.pid, error=str(e))
                    return
                self._logger.debug("input_written", pid=self.pid, byte_count=len(data))

    async def send_input(self, text: str) -> None:
        """Queue text to be written verbatim to the child's stdin.

        No newline is added. Never waits on the child: the text is accepted
        when it can be queued behind earlier input, and refused otherwise.
        Accepted text is always delivered in order while the child lives;
        refused text is never written.

        Args:
            text: The text to write.

        Raises:
            NoSuchProcessError: If no child is running.
            WriteFailedError: If stdin is closed or broken.
            InputBackpressureError: If ``input_queue_size`` earlier inputs
                are still waiting for the child to read its stdin.
        """
        process = self._process
        inputs = self._inputs
        if (
            process is None
            or inputs is None
            or self._exit is not None
            or process.returncode is not None
            or process.stdin is None
        ):
            msg = "No child process is running"
            raise NoSuchProcessError(msg, pid=self.pid)

        data = text.encode("utf-8")
        if not data:
            return

        try:
            inputs.send_nowait(data)
        except anyio.WouldBlock as e:
            msg = (
                f"Child is not reading its stdin: {self.input_queue_size} earlier "
                "inputs are still pending"
            )
            raise InputBackpressureError(msg, pid=self.pid, cause=e) from e
        except (anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            cause = self._input_error or e
            msg = f"Failed to write to child stdin: {cause}"
            raise WriteFailedError(msg, pid=self.pid, cause=cause) from e

        self._logger.debug("input_queued", pid=self.pid, byte_count=len(data))

    async def terminate(self, timeout: float | None = None) -> KillResult:
        """Terminate the child and every descendant.

        Sends SIGTERM to the process tree and the child's process group,
        waits up to ``timeout`` seconds, then sends SIGKILL to survivors.
        Calling this when the child already exited still sweeps the process
        group for orphaned descendants, and is otherwise a no-op.

        Args:
            timeout: Grace period before SIGKILL. Uses terminate_timeout if None.

        Returns:
            The outcome of the tree kill.

        Raises:
            ShutdownError: If some processes survived SIGKILL.
        """
        handle = self._handle
        if handle is None:
            return KillResult.OK

        effective_timeout = timeout if timeout is not None else self.terminate_timeout
        root = None if handle.exited.is_set() else handle.pid

        result, survivors = await anyio.to_thread.run_sync(
            functools.partial(
                kill_tree,
                root,
                pgid=handle.pgid,
                timeout=effective_timeout,
            )
        )
        self._logger.info(
            "child_terminated",
            pid=handle.pid,
            result=result.value,
            survivors=list(survivors),
        )

        if root is not None:
            with anyio.move_on_after(effective_timeout):
                await handle.exited.wait()

        if result is KillResult.FAILED:
            msg = f"Processes survived SIGKILL: {', '.join(map(str, survivors))}"
            raise ShutdownError(msg, pid=handle.pid, survivors=survivors)
        return result
