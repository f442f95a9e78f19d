"""Control channel client.

This module provides the client side of the control protocol, used by the
``request-logs`` and ``send-input`` commands. Connecting and every exchange
carry a timeout, so an unreachable or silent supervisor never hangs the
caller.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Self, final

import anyio
import anyio.abc
from anyio.streams.buffered import BufferedByteReceiveStream

from chopup.exceptions import ControlConnectionError
from chopup.supervisor import (
    MAX_MESSAGE_BYTES,
    ChopCommand,
    ControlResponse,
    SendInputCommand,
    decode_response,
    encode_command,
)

if TYPE_CHECKING:
    from types import TracebackType

DEFAULT_TIMEOUT = 10.0


@final
class ControlClient:
    """Connection to a running supervisor's control socket.

    Several commands may be sent over one connection, one at a time.

    Example:
        >>> async with ControlClient(socket_path) as client:
        ...     response = await client.chop()
    """

    __slots__ = ("_receiver", "_stream", "socket_path", "timeout")

    def __init__(self, socket_path: Path | str, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the client without connecting.

        Args:
            socket_path: Path of the control socket.
            timeout: Seconds allowed for connecting and for each exchange.
        """
        self.socket_path = Path(socket_path)
        self.timeout = timeout
        self._stream: anyio.abc.SocketStream | None = None
        self._receiver: BufferedByteReceiveStream | None = None

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def connect(self) -> None:
        """Open the connection.

        Raises:
            ControlConnectionError: If the socket is missing, refuses the
                connection, or does not accept it within the timeout.
        """
        if self._stream is not None:
            return

        try:
            with anyio.fail_after(self.timeout):
                stream = await anyio.connect_unix(self.socket_path)
        except TimeoutError as e:
            msg = f"Timed out connecting to {self.socket_path}"
            raise ControlConnectionError(msg, socket_path=self.socket_path, cause=e) from e
        except OSError as e:
            msg = f"Cannot connect to chopup at {self.socket_path}: {e.strerror or e}"
            raise ControlConnectionError(msg, socket_path=self.socket_path, cause=e) from e

        self._stream = stream
        self._receiver = BufferedByteReceiveStream(stream)

    async def request(self, command: ChopCommand | SendInputCommand) -> ControlResponse:
        """Send one command and wait for its response.

        Args:
            command: The command to send.

        Returns:
            The supervisor's response.

        Raises:
            ControlConnectionError: If the connection fails, times out, or is
                closed before a response arrives. The connection is then
                closed, and the next request opens a new one.
            ControlProtocolError: If the response cannot be decoded.
        """
        await self.connect()
        stream = self._stream
        receiver = self._receiver
        if stream is None or receiver is None:
            msg = "Control connection is not open"
            raise ControlConnectionError(msg, socket_path=self.socket_path)

        try:
            with anyio.fail_after(self.timeout):
                await stream.send(encode_command(command))
                line = await receiver.receive_until(b"\n", MAX_MESSAGE_BYTES)
        except TimeoutError as e:
            # A late reply must not be read as the answer to the next command.
            await self.aclose()
            msg = f"No response from chopup at {self.socket_path} within {self.timeout}s"
            raise ControlConnectionError(msg, socket_path=self.socket_path, cause=e) from e
        except (
            anyio.IncompleteRead,
            anyio.EndOfStream,
            anyio.DelimiterNotFound,
            anyio.BrokenResourceError,
            anyio.ClosedResourceError,
            OSError,
        ) as e:
            await self.aclose()
            msg = f"Connection to chopup at {self.socket_path} was lost"
            raise ControlConnectionError(msg, socket_path=self.socket_path, cause=e) from e

        return decode_response(line)

    async def chop(self) -> ControlResponse:
        """Rotate the supervisor's active output segment."""
        return await self.request(ChopCommand())

    async def send_input(self, text: str) -> ControlResponse:
        """Write text verbatim to the wrapped process's stdin."""
        return await self.request(SendInputCommand(input=text))

    async def aclose(self) -> None:
        """Close the connection. Idempotent."""
        stream = self._stream
        self._stream = None
        self._receiver = None
        if stream is not None:
            await stream.aclose()


async def request_chop(
    socket_path: Path | str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ControlResponse:
    """Ask the supervisor at ``socket_path`` to chop its output.

    Raises:
        ControlConnectionError: If the supervisor cannot be reached.
        ControlProtocolError: If the response cannot be decoded.
    """
    async with ControlClient(socket_path, timeout=timeout) as client:
        return await client.chop()


async def send_input(
    socket_path: Path | str,
    text: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ControlResponse:
    """Forward text to the stdin of the process wrapped by the supervisor.

    Raises:
        ControlConnectionError: If the supervisor cannot be reached.
        ControlProtocolError: If the response cannot be decoded.
    """
    async with ControlClient(socket_path, timeout=timeout) as client:
        return await client.send_input(text)
