"""Per-scope set of watch caches.

A ``ScopeCacheSet`` owns one :class:`ResourceInformer` per identity that
was requested within its scope. All of them share the set's resync
interval and the factory's stop signal.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

from kubemirror.cache.informer import ResourceInformer
from kubemirror.models.resources import ResourceIdentity
from kubemirror.observability.logging import get_logger

DEFAULT_RESYNC_S: float = 600.0


class ScopeCacheSet:
    def __init__(self, api_client: Any, resync: float = DEFAULT_RESYNC_S, namespace: str = "") -> None:
        self._api_client = api_client
        self._resync = resync
        self._namespace = namespace
        self._informers: dict[ResourceIdentity, ResourceInformer] = {}
        self._stop: asyncio.Event | None = None
        self._log = get_logger("cache.scope", namespace=namespace)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def started(self) -> bool:
        return self._stop is not None

    def for_resource(self, gvr: ResourceIdentity, cluster_scoped: bool = False) -> ResourceInformer | None:
        """Return the informer for ``gvr``, creating it on first request.

        Returns None for an incomplete identity. A set that is already
        started starts new informers immediately.
        """
        if not gvr.is_complete():
            self._log.debug("informer_rejected", gvr=str(gvr))
            return None

        informer = self._informers.get(gvr)
        if informer is None:
            informer = ResourceInformer(
                self._api_client,
                gvr,
                self._namespace,
                resync=self._resync,
                cluster_scoped=cluster_scoped,
            )
            self._informers[gvr] = informer
            self._log.debug("informer_created", gvr=str(gvr), path=informer.path)
        if self._stop is not None:
            informer.start(self._stop)
        return informer

    def start(self, stop: asyncio.Event) -> None:
        """Start every informer against ``stop``. Safe to call repeatedly."""
        self._stop = stop
        for informer in self._informers.values():
            informer.start(stop)

    async def wait_for_sync(self, stop: asyncio.Event) -> dict[ResourceIdentity, bool]:
        """Wait for the initial listing of every owned informer."""
        informers = list(self._informers.items())
        results = await asyncio.gather(*(inf.wait_for_sync(stop) for _, inf in informers))
        return {gvr: synced for (gvr, _), synced in zip(informers, results, strict=True)}

    async def join(self) -> None:
        """Wait for every informer task to finish once the stop signal fired."""
        await asyncio.gather(*(inf.join() for inf in list(self._informers.values())))

    def informers(self) -> list[ResourceInformer]:
        return list(self._informers.values())

    def __iter__(self) -> Iterator[ResourceIdentity]:
        return iter(list(self._informers))

    def __contains__(self, gvr: object) -> bool:
        return gvr in self._informers

    def __len__(self) -> int:
        return len(self._informers)
