"""Application bootstrap for kubemirror.

Wires components in dependency order and manages their asyncio lifecycle.
Startup order: config -> logging -> K8s connection -> cache factory.

Shutdown runs in reverse order. Each step's error is caught and logged so
one failing component does not keep the rest from shutting down.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from kubemirror import __version__
from kubemirror.config import load_config
from kubemirror.models.config import KubeMirrorConfig
from kubemirror.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from kubemirror.cache.factory import CacheFactory
    from kubemirror.client.connection import APIClient
    from kubemirror.forward.session import Dialer, PortForward


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeMirrorApp:
    """Application root. Owns the connection and the cache factory.

    ``stop()`` is safe on an app that was never started or already stopped.
    """

    def __init__(self, config: KubeMirrorConfig | None = None) -> None:
        self.config = config
        self._connection: APIClient | None = None
        self._factory: CacheFactory | None = None
        self._running = False
        self._log: FilteringBoundLogger | None = None

    @property
    def factory(self) -> CacheFactory:
        if self._factory is None:
            raise RuntimeError("application is not started")
        return self._factory

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubemirror starting", version=__version__)

        await self._start_connection()
        await self._start_factory()

        self._running = True
        self._log.info("kubemirror started", namespace=self.config.cache.namespace)

    async def _start_connection(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s connection")
        try:
            from kubemirror.client.connection import APIClient

            connection = APIClient(self.config.kube)
            await connection.connect()
            self._connection = connection
        except Exception as exc:
            raise _ComponentError("connection", exc) from exc

    async def _start_factory(self) -> None:
        """Build the cache factory and activate the configured scope."""
        assert self._log is not None
        assert self.config is not None
        assert self._connection is not None
        self._log.debug("starting cache factory")
        try:
            from kubemirror.cache.factory import CacheFactory

            factory = CacheFactory(self._connection, resync=float(self.config.cache.resync_seconds))
            factory.set_active(self.config.cache.namespace)
            factory.init()
            self._factory = factory
            self._log.info("cache factory started", scopes=factory.scopes())
        except Exception as exc:
            raise _ComponentError("factory", exc) from exc

    async def wait_ready(self) -> bool:
        """Wait for the initial cache sync, bounded by the configured timeout.

        Returns False if the timeout expired first.
        """
        assert self.config is not None
        try:
            await asyncio.wait_for(self.factory.wait_for_sync(), timeout=self.config.cache.sync_timeout_seconds)
        except TimeoutError:
            if self._log is not None:
                self._log.warning("cache sync timed out", timeout_s=self.config.cache.sync_timeout_seconds)
            return False
        return True

    # ------------------------------------------------------------------
    # Port-forwards
    # ------------------------------------------------------------------

    async def port_forward(
        self,
        namespace: str,
        pod: str,
        container: str,
        local_port: int,
        remote_port: int,
        dialer: Dialer,
    ) -> PortForward:
        """Start a forward on the configured listen address and register it.

        A running forward for the same container is stopped and replaced.
        """
        assert self.config is not None
        from kubemirror.forward.session import PortForward

        factory = self.factory
        session = PortForward(
            namespace,
            pod,
            container,
            local_port,
            remote_port,
            dialer,
            address=self.config.forward.address,
        )
        await session.start()
        await factory.register_forwarder(session)
        return session

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Terminate the factory, then close the connection."""
        log = self._log or get_logger("app")
        if self._factory is not None:
            try:
                await self._factory.terminate()
            except Exception as exc:
                log.error("factory shutdown failed", error=str(exc))
            self._factory = None
        if self._connection is not None:
            try:
                await self._connection.close()
            except Exception as exc:
                log.error("connection shutdown failed", error=str(exc))
            self._connection = None
        if self._running:
            log.info("kubemirror stopped")
        self._running = False
