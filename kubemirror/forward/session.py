"""Port-forward sessions.

A session listens on a local TCP port and tunnels every accepted
connection to a container port. How bytes reach the container is up to
the injected ``dialer``: it receives ``(namespace, pod, remote_port)`` and
returns an ``(reader, writer)`` stream pair connected to the remote end.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from kubemirror.models.resources import ForwardState
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import forward_connections_total

Dialer = Callable[[str, str, int], Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]

_PUMP_CHUNK: int = 64 * 1024


@runtime_checkable
class ForwardSession(Protocol):
    """What the port-forward registry needs from a session."""

    @property
    def path(self) -> str: ...

    @property
    def state(self) -> ForwardState: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


def forward_path(namespace: str, pod: str, container: str) -> str:
    """Return the registry key for a container forward."""
    return f"{namespace}/{pod}:{container}"


class PortForward:
    """Local listener tunnelling to one container port."""

    def __init__(
        self,
        namespace: str,
        pod: str,
        container: str,
        local_port: int,
        remote_port: int,
        dialer: Dialer,
        address: str = "localhost",
    ) -> None:
        self._namespace = namespace
        self._pod = pod
        self._container = container
        self._local_port = local_port
        self._remote_port = remote_port
        self._dialer = dialer
        self._address = address

        self._state = ForwardState.STOPPED
        self._server: asyncio.Server | None = None
        self._pumps: set[asyncio.Task[None]] = set()
        self._started_at: datetime | None = None
        self._log = get_logger("forward.session")

    @property
    def path(self) -> str:
        return forward_path(self._namespace, self._pod, self._container)

    @property
    def container(self) -> str:
        return self._container

    @property
    def ports(self) -> tuple[int, int]:
        """Return the (local, remote) port pair as requested."""
        return self._local_port, self._remote_port

    @property
    def state(self) -> ForwardState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is ForwardState.RUNNING

    @property
    def bound_port(self) -> int | None:
        """The local port actually bound (differs from ``ports[0]`` when 0 was requested)."""
        if self._server is None or not self._server.sockets:
            return None
        return int(self._server.sockets[0].getsockname()[1])

    def age(self) -> timedelta:
        if self._started_at is None:
            return timedelta(0)
        return datetime.now(tz=UTC) - self._started_at

    async def start(self) -> None:
        """Bind the local listener. Starting a running session is a no-op."""
        if self._state is ForwardState.RUNNING:
            return
        self._server = await asyncio.start_server(self._accept, host=self._address, port=self._local_port)
        self._state = ForwardState.RUNNING
        self._started_at = datetime.now(tz=UTC)
        self._log.info("forward_started", path=self.path, local_port=self.bound_port, remote_port=self._remote_port)

    async def stop(self) -> None:
        """Close the listener and every open tunnel. Idempotent."""
        if self._state is ForwardState.STOPPED:
            return
        self._state = ForwardState.STOPPED
        server, self._server = self._server, None
        if server is not None:
            server.close()
        pumps = list(self._pumps)
        for task in pumps:
            task.cancel()
        for task in pumps:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if server is not None:
            await server.wait_closed()
        self._log.info("forward_stopped", path=self.path)

    # ------------------------------------------------------------------
    # Tunnelling
    # ------------------------------------------------------------------

    async def _accept(self, local_reader: asyncio.StreamReader, local_writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._pumps.add(task)
        forward_connections_total.inc()
        remote_writer: asyncio.StreamWriter | None = None
        try:
            remote_reader, remote_writer = await self._dialer(self._namespace, self._pod, self._remote_port)
            await asyncio.gather(
                _pump(local_reader, remote_writer),
                _pump(remote_reader, local_writer),
            )
        except (ConnectionError, OSError) as exc:
            self._log.warning("forward_tunnel_failed", path=self.path, error=str(exc))
        finally:
            for writer in (remote_writer, local_writer):
                if writer is not None:
                    writer.close()
            if task is not None:
                self._pumps.discard(task)


async def _pump(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Copy bytes until EOF, then half-close the write side."""
    while True:
        data = await reader.read(_PUMP_CHUNK)
        if not data:
            break
        writer.write(data)
        await writer.drain()
    if writer.can_write_eof():
        with contextlib.suppress(OSError):
            writer.write_eof()
