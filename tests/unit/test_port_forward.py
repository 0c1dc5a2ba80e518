"""Unit tests for kubemirror.forward.session.PortForward.

The dialer connects to a local echo server, so the tunnel is exercised
end to end over real loopback sockets.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from kubemirror.forward.session import ForwardSession, PortForward, forward_path
from kubemirror.models.resources import ForwardState


@pytest.fixture
async def echo_port() -> AsyncIterator[int]:
    async def _echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while data := await reader.read(1024):
            writer.write(data)
            await writer.drain()
        writer.close()

    server = await asyncio.start_server(_echo, host="127.0.0.1", port=0)
    try:
        yield int(server.sockets[0].getsockname()[1])
    finally:
        server.close()
        await server.wait_closed()


def _forward(echo_port: int, dialed: list[tuple[str, str, int]] | None = None) -> PortForward:
    async def _dialer(ns: str, pod: str, port: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if dialed is not None:
            dialed.append((ns, pod, port))
        return await asyncio.open_connection("127.0.0.1", echo_port)

    return PortForward("default", "web-0", "app", 0, 8080, _dialer, address="127.0.0.1")


class TestForwardPath:
    def test_path_format(self) -> None:
        assert forward_path("default", "web-0", "app") == "default/web-0:app"


class TestPortForward:
    async def test_satisfies_session_protocol(self, echo_port: int) -> None:
        fwd = _forward(echo_port)
        assert isinstance(fwd, ForwardSession)
        assert fwd.path == "default/web-0:app"
        assert fwd.ports == (0, 8080)

    async def test_tunnel_round_trip(self, echo_port: int) -> None:
        dialed: list[tuple[str, str, int]] = []
        fwd = _forward(echo_port, dialed)
        await fwd.start()
        try:
            assert fwd.state is ForwardState.RUNNING
            assert fwd.bound_port
            reader, writer = await asyncio.open_connection("127.0.0.1", fwd.bound_port)
            writer.write(b"ping")
            await writer.drain()
            assert await asyncio.wait_for(reader.readexactly(4), timeout=2) == b"ping"
            writer.close()
            await writer.wait_closed()
        finally:
            await fwd.stop()

        assert dialed == [("default", "web-0", 8080)]

    async def test_stop_is_idempotent(self, echo_port: int) -> None:
        fwd = _forward(echo_port)
        await fwd.stop()
        await fwd.start()
        await fwd.start()
        assert fwd.active

        await fwd.stop()
        await fwd.stop()

        assert fwd.state is ForwardState.STOPPED
        assert fwd.bound_port is None

    async def test_stop_closes_open_tunnels(self, echo_port: int) -> None:
        fwd = _forward(echo_port)
        await fwd.start()
        reader, writer = await asyncio.open_connection("127.0.0.1", fwd.bound_port)
        writer.write(b"x")
        await writer.drain()
        await asyncio.wait_for(reader.readexactly(1), timeout=2)

        await asyncio.wait_for(fwd.stop(), timeout=2)

        assert await asyncio.wait_for(reader.read(), timeout=2) == b""
        writer.close()

    async def test_dial_failure_closes_client(self) -> None:
        async def _refuse(ns: str, pod: str, port: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
            raise ConnectionRefusedError("nothing listening")

        fwd = PortForward("default", "web-0", "app", 0, 8080, _refuse, address="127.0.0.1")
        await fwd.start()
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", fwd.bound_port)
            assert await asyncio.wait_for(reader.read(), timeout=2) == b""
            writer.close()
        finally:
            await fwd.stop()
