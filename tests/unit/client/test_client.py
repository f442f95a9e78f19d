"""Unit tests for the control channel client."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio
import pytest

if TYPE_CHECKING:
    from pathlib import Path

    from anyio.abc import SocketStream

pytestmark = pytest.mark.anyio


class TestConnect:
    async def test_missing_socket_raises_connection_error(self, short_dir: Path) -> None:
        from chopup.client import request_chop
        from chopup.exceptions import ControlConnectionError

        with pytest.raises(ControlConnectionError, match="Cannot connect") as exc_info:
            _ = await request_chop(short_dir / "absent.sock", timeout=1)

        assert exc_info.value.socket_path == short_dir / "absent.sock"

    async def test_aclose_without_connect_is_noop(self, short_dir: Path) -> None:
        from chopup.client import ControlClient

        client = ControlClient(short_dir / "absent.sock")
        await client.aclose()
        await client.aclose()


class TestExchange:
    async def test_silent_server_times_out(self, short_dir: Path) -> None:
        from chopup.client import request_chop
        from chopup.exceptions import ControlConnectionError

        path = short_dir / "silent.sock"
        listener = await anyio.create_unix_listener(path)

        async def accept_and_hold() -> None:
            stream = await listener.accept()
            async with stream:
                await anyio.sleep_forever()

        async with listener, anyio.create_task_group() as tg:
            tg.start_soon(accept_and_hold)
            with pytest.raises(ControlConnectionError, match="No response"):
                _ = await request_chop(path, timeout=0.3)
            tg.cancel_scope.cancel()

    async def test_server_closing_early_raises_connection_error(
        self, short_dir: Path
    ) -> None:
        from chopup.client import request_chop
        from chopup.exceptions import ControlConnectionError

        path = short_dir / "rude.sock"
        listener = await anyio.create_unix_listener(path)

        async def accept_and_close() -> None:
            stream = await listener.accept()
            await stream.aclose()

        async with listener, anyio.create_task_group() as tg:
            tg.start_soon(accept_and_close)
            with pytest.raises(ControlConnectionError, match="was lost"):
                _ = await request_chop(path, timeout=2)

    async def test_malformed_response_raises_protocol_error(self, short_dir: Path) -> None:
        from chopup.client import send_input
        from chopup.exceptions import ControlProtocolError

        path = short_dir / "odd.sock"
        listener = await anyio.create_unix_listener(path)

        async def reply_garbage() -> None:
            stream = await listener.accept()
            async with stream:
                _ = await stream.receive()
                await stream.send(b'{"status": "NOT_A_STATUS"}\n')

        async with listener, anyio.create_task_group() as tg:
            tg.start_soon(reply_garbage)
            with pytest.raises(ControlProtocolError):
                _ = await send_input(path, "x", timeout=2)

    async def test_late_reply_is_not_taken_for_the_next_answer(self, short_dir: Path) -> None:
        from chopup.client import ControlClient
        from chopup.exceptions import ControlConnectionError

        path = short_dir / "slow.sock"
        listener = await anyio.create_unix_listener(path)
        connections = 0

        async def reply_with_connection_number(stream: SocketStream) -> None:
            nonlocal connections
            connections += 1
            number = connections
            async with stream:
                while True:
                    try:
                        _ = await stream.receive()
                        await anyio.sleep(0.5 if number == 1 else 0)
                        reply = f'{{"status":"LOGS_CHOPPED","path":"/logs/{number}.log"}}\n'
                        await stream.send(reply.encode())
                    except (anyio.EndOfStream, anyio.BrokenResourceError):
                        return

        async with listener, anyio.create_task_group() as tg:
            tg.start_soon(listener.serve, reply_with_connection_number)
            async with ControlClient(path, timeout=0.2) as client:
                with pytest.raises(ControlConnectionError, match="No response"):
                    _ = await client.chop()
                await anyio.sleep(0.5)
                response = await client.chop()
            tg.cancel_scope.cancel()

        assert response.path == "/logs/2.log"
        assert connections == 2
