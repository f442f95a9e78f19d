"""Control channel server.

This module provides the ControlServer that listens on a Unix domain socket,
decodes one command per newline-delimited JSON record, dispatches it against
the output sink or the child under a single lock, and writes one response
per command.
"""

from __future__ import annotations

import contextlib
import os
import stat
from typing import TYPE_CHECKING, assert_never, final

import anyio
import anyio.abc
from anyio.streams.buffered import BufferedByteReceiveStream

from chopup.exceptions import (
    ChildIOError,
    ConfigurationError,
    ControlProtocolError,
    EndpointInUseError,
    EndpointUnwritableError,
    InputBackpressureError,
    NoSuchProcessError,
    RotationError,
)
from chopup.utils import get_null_logger

from ._wire import (
    DELIMITER,
    MAX_MESSAGE_BYTES,
    ChopCommand,
    ControlResponse,
    ControlStatus,
    SendInputCommand,
    decode_command,
    encode_response,
)

if TYPE_CHECKING:
    from pathlib import Path

    from structlog.typing import FilteringBoundLogger

    from ._child import ChildSupervisor
    from ._sink import SegmentedOutputSink

DEFAULT_IDLE_TIMEOUT = 30.0
LIVENESS_PROBE_TIMEOUT = 1.0


async def endpoint_is_live(path: Path) -> bool:
    """Check whether something accepts connections on a Unix socket path."""
    try:
        with anyio.fail_after(LIVENESS_PROBE_TIMEOUT):
            stream = await anyio.connect_unix(path)
    except (OSError, TimeoutError):
        return False
    await stream.aclose()
    return True


@final
class ControlServer:
    """Serves chop and send-input commands over a Unix socket.

    Connections are handled concurrently; each may send several commands
    in sequence. Commands from every connection (and from the watch
    trigger, through ``execute``) are serialized by one lock.

    Attributes:
        socket_path: Path of the control socket.
        idle_timeout: Seconds a connection may stay silent before it is closed.
    """

    __slots__ = (
        "_accepting",
        "_child",
        "_closed",
        "_connection_count",
        "_lock",
        "_listener",
        "_logger",
        "_scope",
        "_sink",
        "idle_timeout",
        "socket_path",
    )

    def __init__(
        self,
        socket_path: Path,
        sink: SegmentedOutputSink,
        child: ChildSupervisor,
        *,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the server without binding.

        Args:
            socket_path: Path of the control socket.
            sink: Output sink rotated by chop commands.
            child: Child receiving send-input commands.
            idle_timeout: Seconds a connection may stay silent.
            logger: Diagnostic logger.
        """
        self.socket_path = socket_path
        self.idle_timeout = idle_timeout
        self._sink = sink
        self._child = child
        self._logger = (logger or get_null_logger()).bind(component="server")
        self._lock = anyio.Lock()
        self._listener: anyio.abc.Listener[anyio.abc.SocketStream] | None = None
        self._scope: anyio.CancelScope | None = None
        self._accepting = True
        self._closed = False
        self._connection_count = 0

    @property
    def is_listening(self) -> bool:
        """Return True while the socket is bound and not yet closed."""
        return self._listener is not None and not self._closed

    @property
    def accepting(self) -> bool:
        """Return True until stop_accepting() was called."""
        return self._accepting

    async def listen(self) -> Path:
        """Bind the control socket.

        A stale socket file left behind by a dead supervisor is replaced.

        Returns:
            The bound socket path.

        Raises:
            EndpointInUseError: If a live listener answers on the path.
            EndpointUnwritableError: If the parent directory is missing or
                not writable, the path is not a socket, or binding fails.
        """
        if self._listener is not None or self._closed:
            msg = "Control server was already started"
            raise ConfigurationError(msg, path=self.socket_path)

        path = self.socket_path
        parent = path.parent
        if not parent.is_dir() or not os.access(parent, os.W_OK | os.X_OK):
            msg = f"Socket directory is missing or not writable: {parent}"
            raise EndpointUnwritableError(msg, path=path)

        try:
            mode = path.lstat().st_mode
        except FileNotFoundError:
            mode = None

        if mode is not None:
            if not stat.S_ISSOCK(mode):
                msg = f"Socket path exists and is not a socket: {path}"
                raise EndpointUnwritableError(msg, path=path)
            if await endpoint_is_live(path):
                msg = f"Another process is already listening on {path}"
                raise EndpointInUseError(msg, path=path)
            try:
                path.unlink()
            except OSError as e:
                msg = f"Failed to remove stale socket {path}: {e}"
                raise EndpointUnwritableError(msg, path=path, cause=e) from e
            self._logger.info("stale_socket_removed", path=str(path))

        try:
            self._listener = await anyio.create_unix_listener(path, mode=0o600)
        except OSError as e:
            msg = f"Failed to bind control socket {path}: {e}"
            raise EndpointUnwritableError(msg, path=path, cause=e) from e

        self._logger.info("server_listening", path=str(path))
        return path

    async def serve(self) -> None:
        """Accept connections until the server is closed.

        Raises:
            ConfigurationError: If listen() was not called.
            OSError: If accepting fails for a reason other than closing.
        """
        listener = self._listener
        if listener is None:
            msg = "Control server is not listening"
            raise ConfigurationError(msg, path=self.socket_path)

        async with anyio.create_task_group() as tg:
            self._scope = tg.cancel_scope
            while True:
                try:
                    stream = await listener.accept()
                except (anyio.ClosedResourceError, anyio.BrokenResourceError):
                    break
                self._connection_count += 1
                tg.start_soon(self._handle_connection, stream, self._connection_count)
            tg.cancel_scope.cancel()

    async def _handle_connection(self, stream: anyio.abc.SocketStream, connection_id: int) -> None:
        log = self._logger.bind(connection_id=connection_id)
        log.debug("connection_opened")
        receiver = BufferedByteReceiveStream(stream)

        async with stream:
            while True:
                try:
                    with anyio.fail_after(self.idle_timeout):
                        line = await receiver.receive_until(DELIMITER, MAX_MESSAGE_BYTES)
                except TimeoutError:
                    log.debug("connection_idle_timeout")
                    return
                except anyio.DelimiterNotFound:
                    log.warning("message_too_large", max_bytes=MAX_MESSAGE_BYTES)
                    response = ControlResponse(
                        status=ControlStatus.IPC_PARSE_ERROR,
                        message=f"Message exceeds {MAX_MESSAGE_BYTES} bytes",
                    )
                    _ = await self._reply(stream, response, log)
                    return
                except (
                    anyio.IncompleteRead,
                    anyio.EndOfStream,
                    anyio.ClosedResourceError,
                    anyio.BrokenResourceError,
                ):
                    log.debug("connection_closed")
                    return

                try:
                    command = decode_command(line)
                except ControlProtocolError as e:
                    status = (
                        ControlStatus.UNKNOWN_COMMAND
                        if e.unknown_command
                        else ControlStatus.IPC_PARSE_ERROR
                    )
                    log.warning("control_message_rejected", status=status.value, error=str(e))
                    response = ControlResponse(status=status, message=str(e))
                    _ = await self._reply(stream, response, log)
                    return

                response = await self.execute(command)
                if not await self._reply(stream, response, log):
                    return

    async def _reply(
        self,
        stream: anyio.abc.SocketStream,
        response: ControlResponse,
        log: FilteringBoundLogger,
    ) -> bool:
        try:
            with anyio.fail_after(self.idle_timeout):
                await stream.send(encode_response(response))
        except (TimeoutError, anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            log.debug("reply_failed", status=response.status.value, error=repr(e))
            return False
        return True

    async def execute(self, command: ChopCommand | SendInputCommand) -> ControlResponse:
        """Run one command against the sink or the child.

        Args:
            command: The decoded command.

        Returns:
            The response to send back.
        """
        async with self._lock:
            if not self._accepting:
                return ControlResponse(
                    status=ControlStatus.SHUTTING_DOWN,
                    message="Supervisor is shutting down",
                )

            match command:
                case ChopCommand():
                    return self._chop()
                case SendInputCommand(input=text):
                    return await self._send_input(text)
                case _:
                    assert_never(command)

    def _chop(self) -> ControlResponse:
        try:
            closed = self._sink.rotate()
        except RotationError as e:
            self._logger.warning("chop_failed", error=str(e))
            return ControlResponse(status=ControlStatus.CHOP_FAILED, message=str(e))

        active = self._sink.active_path
        return ControlResponse(
            status=ControlStatus.LOGS_CHOPPED,
            path=str(closed.path),
            active_path=str(active) if active is not None else None,
        )

    async def _send_input(self, text: str) -> ControlResponse:
        try:
            await self._child.send_input(text)
        except NoSuchProcessError as e:
            return ControlResponse(status=ControlStatus.INPUT_SEND_ERROR_NO_CHILD, message=str(e))
        except InputBackpressureError as e:
            self._logger.warning("input_backpressure", error=str(e))
            return ControlResponse(
                status=ControlStatus.INPUT_SEND_ERROR_BACKPRESSURE,
                message=str(e),
            )
        except ChildIOError as e:
            self._logger.warning("input_send_failed", error=str(e))
            return ControlResponse(status=ControlStatus.INPUT_SEND_ERROR, message=str(e))
        return ControlResponse(status=ControlStatus.INPUT_SENT)

    async def stop_accepting(self) -> None:
        """Answer every later command with SHUTTING_DOWN.

        Waits for the command currently holding the lock, if any.
        """
        async with self._lock:
            self._accepting = False

    async def aclose(self) -> None:
        """Close the listener and open connections, and remove the socket file.

        Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        self._accepting = False

        listener = self._listener
        if listener is None:
            return

        with anyio.CancelScope(shield=True):
            await listener.aclose()
        if self._scope is not None:
            self._scope.cancel()

        with contextlib.suppress(FileNotFoundError):
            self.socket_path.unlink()
        self._logger.info("server_closed", path=str(self.socket_path))
