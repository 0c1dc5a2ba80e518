"""Cache factory: lazily built, authorization gated watch caches per scope.

Owns every :class:`ScopeCacheSet` (one per scope key), the shared stop
signal that ends all background informer tasks, the active scope and the
port-forward registry.

Scope keys
----------
``"<namespace>"``  a single namespace.
``""``             all namespaces. Once this set exists every other
                   namespace request is served from it and no
                   namespace-scoped set is ever created again.
``"-"``            cluster-scoped resources.

Reads
-----
:meth:`CacheFactory.list` and :meth:`CacheFactory.get` first ask the
connection whether the verb is allowed. A denial or a failed check raises
before any cache is touched. Past the check, reads only hit the local
store.

Concurrency
-----------
Scope map and registry mutations happen on the calling task only.
:meth:`CacheFactory.ensure_factory` never awaits, so under asyncio a set is
fully built, started and warmed before any other task can observe it.
"""

from __future__ import annotations

import asyncio
import builtins
from typing import TYPE_CHECKING, Any

from kubemirror.cache.informer import ResourceInformer
from kubemirror.cache.paths import namespaced, to_gvr
from kubemirror.cache.scope import DEFAULT_RESYNC_S, ScopeCacheSet
from kubemirror.errors import (
    AccessDeniedError,
    AuthCheckFailedError,
    CacheNotFoundError,
    FactoryTerminatedError,
)
from kubemirror.forward.registry import PortForwardRegistry
from kubemirror.models.resources import ALL_NAMESPACES, CLUSTER_SCOPE
from kubemirror.observability.logging import get_logger
from kubemirror.observability.metrics import access_denied_total, scope_caches

if TYPE_CHECKING:
    from kubemirror.cache.selector import Selector
    from kubemirror.client.connection import Connection
    from kubemirror.forward.session import ForwardSession

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Kinds every new scope set starts watching right away: (gvr, cluster_scoped)
_WARMUP_KINDS: tuple[tuple[str, bool], ...] = (
    ("v1/pods", False),
    ("apiextensions.k8s.io/v1/customresourcedefinitions", True),
    ("rbac.authorization.k8s.io/v1/clusterroles", True),
    ("rbac.authorization.k8s.io/v1/roles", False),
)


class CacheFactory:
    """Owner of all scope caches and port-forward sessions.

    Example::

        factory = CacheFactory(connection)
        factory.set_active("default")
        factory.init()
        await asyncio.wait_for(factory.wait_for_sync(), timeout=30)
        pods = await factory.list("v1/pods", "default")
        ...
        await factory.terminate()
    """

    def __init__(self, connection: Connection, resync: float = DEFAULT_RESYNC_S) -> None:
        self._connection = connection
        self._resync = resync
        self._factories: dict[str, ScopeCacheSet] = {}
        self._stop: asyncio.Event | None = asyncio.Event()
        self._active_ns: str = ALL_NAMESPACES
        self._forwarders = PortForwardRegistry()
        self._log = get_logger("cache.factory")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def active_namespace(self) -> str:
        return self._active_ns

    @property
    def terminated(self) -> bool:
        return self._stop is None

    def is_cluster_wide(self) -> bool:
        return ALL_NAMESPACES in self._factories

    def factory_for(self, ns: str) -> ScopeCacheSet | None:
        """Return the set owned for ``ns`` without creating one."""
        return self._factories.get(ns)

    def scopes(self) -> list[str]:
        return list(self._factories)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, gvr: str, ns: str, selector: Selector | None = None) -> list[dict[str, Any]]:
        """List cached objects of ``gvr`` in scope ``ns`` matching ``selector``.

        Raises:
            AccessDeniedError: list is not allowed.
            AuthCheckFailedError: the authorization check itself failed.
            CacheNotFoundError: no cache can serve ``gvr``.
        """
        await self._authorize(ns, gvr, "list")

        informer = self.for_resource(ns, gvr)
        if informer is None:
            raise CacheNotFoundError(gvr, ns)
        if ns == CLUSTER_SCOPE:
            return informer.lister().list(selector)
        return informer.lister().by_namespace(ns).list(selector)

    async def get(self, gvr: str, path: str, selector: Selector | None = None) -> dict[str, Any] | None:
        """Return the cached object at ``namespace/name`` (or bare ``name``).

        ``selector`` is accepted for symmetry with :meth:`list` and ignored.
        Returns None when the cache holds no such object. Raises like
        :meth:`list`.
        """
        ns, name = namespaced(path)
        await self._authorize(ns, gvr, "get")

        informer = self.for_resource(ns, gvr)
        if informer is None:
            raise CacheNotFoundError(gvr, ns)
        if ns == CLUSTER_SCOPE:
            return informer.lister().get(name)
        self._log.debug("cache_get", gvr=gvr, namespace=ns, path=path)
        return informer.lister().by_namespace(ns).get(name)

    async def _authorize(self, ns: str, gvr: str, verb: str) -> None:
        try:
            allowed = await self._connection.can_i(ns, gvr, [verb])
        except AuthCheckFailedError:
            raise
        except Exception as exc:
            raise AuthCheckFailedError(f"unable to check {verb} access on {gvr}: {exc}") from exc
        if not allowed:
            access_denied_total.labels(verb=verb).inc()
            self._log.info("access_denied", verb=verb, namespace=ns, gvr=gvr)
            raise AccessDeniedError(verb, ns, gvr)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_active(self, ns: str) -> None:
        """Make ``ns`` the active scope, building its set unless cluster-wide."""
        if not self.is_cluster_wide():
            self.ensure_factory(ns)
        self._active_ns = ns

    def init(self) -> None:
        self.start()

    def start(self) -> None:
        """Start background sync for every owned set (idempotent)."""
        stop = self._require_stop()
        for ns, fac in self._factories.items():
            self._log.debug("scope_cache_starting", namespace=ns)
            fac.start(stop)

    async def wait_for_sync(self) -> None:
        """Block until every owned informer has its initial listing.

        No timeout: bound it with ``asyncio.wait_for`` if needed. An informer
        whose collection is refused or not served counts as done, so warm-up
        kinds the caller may not list never block this. Returns early if the
        factory is terminated meanwhile.
        """
        stop = self._stop
        if stop is None:
            return
        await asyncio.gather(*(fac.wait_for_sync(stop) for fac in list(self._factories.values())))

    async def terminate(self) -> None:
        """Stop all caches and forwards. Later calls are no-ops.

        Returns once every informer task has finished, so the connection
        can be closed right after.
        """
        if self._stop is not None:
            self._stop.set()
            self._stop = None
            self._log.info("factory_terminated", scopes=len(self._factories))
        factories = list(self._factories.values())
        self._factories.clear()
        await asyncio.gather(*(fac.join() for fac in factories))
        scope_caches.set(0)
        await self._forwarders.terminate_all()

    # ------------------------------------------------------------------
    # Cache resolution
    # ------------------------------------------------------------------

    def for_resource(self, ns: str, gvr: str) -> ResourceInformer | None:
        """Return a started informer for ``gvr`` in ``ns``, building it if needed."""
        fac = self.ensure_factory(ns)
        return fac.for_resource(to_gvr(gvr))

    def preload(self, ns: str, gvr: str) -> None:
        self.for_resource(ns, gvr)

    def ensure_factory(self, ns: str) -> ScopeCacheSet:
        """Return the set for ``ns``, creating, starting and warming it on first use.

        Raises:
            FactoryTerminatedError: the factory was terminated.
            DialError: the connection cannot provide a dial handle.
        """
        if self.is_cluster_wide():
            ns = ALL_NAMESPACES
        fac = self._factories.get(ns)
        if fac is not None:
            return fac

        stop = self._require_stop()
        fac = ScopeCacheSet(self._connection.dial(), resync=self._resync, namespace=ns)
        fac.start(stop)
        self._warm_up(fac)
        self._factories[ns] = fac
        scope_caches.set(len(self._factories))
        self._log.info("scope_cache_created", namespace=ns)
        return fac

    def _warm_up(self, fac: ScopeCacheSet) -> None:
        for gvr, cluster_scoped in _WARMUP_KINDS:
            try:
                fac.for_resource(to_gvr(gvr), cluster_scoped=cluster_scoped)
            except Exception as exc:
                self._log.debug("warmup_skipped", namespace=fac.namespace, gvr=gvr, error=str(exc))

    def _require_stop(self) -> asyncio.Event:
        if self._stop is None:
            raise FactoryTerminatedError("cache factory has been terminated")
        return self._stop

    # ------------------------------------------------------------------
    # Port-forwards
    # ------------------------------------------------------------------

    async def register_forwarder(self, session: ForwardSession) -> None:
        await self._forwarders.register(session)

    async def delete_forwarder(self, path: str) -> None:
        await self._forwarders.unregister(path)

    def forwarder_for(self, path: str) -> ForwardSession | None:
        return self._forwarders.lookup(path)

    def forwarders(self) -> builtins.list[ForwardSession]:
        return self._forwarders.all()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def dump(self) -> None:
        """Log the owned scope keys."""
        self._log.debug("factory_dump", scopes=list(self._factories), active=self._active_ns)

    def show(self, ns: str, gvr: str) -> None:
        """Log the store keys of one informer, building it if needed."""
        informer = self.for_resource(ns, gvr)
        keys = informer.list_keys() if informer is not None else []
        self._log.debug("factory_show", namespace=ns, gvr=gvr, keys=keys)

    def debug(self, gvr: str) -> None:
        """Log the store keys of the all-namespaces informer for ``gvr``, if any."""
        fac = self._factories.get(ALL_NAMESPACES)
        informer = fac.for_resource(to_gvr(gvr)) if fac is not None else None
        keys = informer.list_keys() if informer is not None else []
        self._log.debug("factory_debug", gvr=gvr, keys=keys)
