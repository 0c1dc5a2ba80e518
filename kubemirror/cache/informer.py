"""Watch cache for one resource identity in one scope.

A ``ResourceInformer`` mirrors a single collection (``apps/v1/deployments``
in namespace ``default``, ``v1/nodes`` cluster-wide, ...) into a local
:class:`~kubemirror.cache.store.ObjectStore`. Any identity works: the
collection path is built from the identity at runtime, so custom resources
need no generated client code.
"""

from __future__ import annotations

import asyncio
import builtins
from typing import Any

from kubemirror.cache.store import Lister, ObjectStore
from kubemirror.collector.watcher import BaseWatcher
from kubemirror.models.resources import ResourceIdentity, is_sentinel
from kubemirror.observability.metrics import cache_objects

_LIST_QUERY_PARAMS: tuple[tuple[str, str], ...] = (
    ("label_selector", "labelSelector"),
    ("field_selector", "fieldSelector"),
    ("resource_version", "resourceVersion"),
    ("allow_watch_bookmarks", "allowWatchBookmarks"),
    ("timeout_seconds", "timeoutSeconds"),
    ("limit", "limit"),
)


def collection_path(gvr: ResourceIdentity, namespace: str, cluster_scoped: bool = False) -> str:
    """Return the REST collection path for ``gvr`` in ``namespace``.

    Sentinel scopes and cluster-scoped kinds use the cluster-wide path.
    """
    base = f"/apis/{gvr.group}/{gvr.version}" if gvr.group else f"/api/{gvr.version}"
    if cluster_scoped or is_sentinel(namespace):
        return f"{base}/{gvr.resource}"
    return f"{base}/namespaces/{namespace}/{gvr.resource}"


class ResourceInformer(BaseWatcher):
    """List/watch mirror of one collection.

    Usage::

        informer = ResourceInformer(api_client, to_gvr("v1/pods"), "default", resync=600)
        informer.start(stop)
        await informer.wait_for_sync(stop)
        pods = informer.lister().by_namespace("default").list()
    """

    def __init__(
        self,
        api_client: Any,
        gvr: ResourceIdentity,
        namespace: str,
        resync: float,
        cluster_scoped: bool = False,
    ) -> None:
        """Initialise the informer.

        Args:
            api_client: A kubernetes_asyncio ``ApiClient``.
            gvr: Identity of the mirrored collection.
            namespace: Scope key; a sentinel selects the cluster-wide path.
            resync: Seconds between full relists.
            cluster_scoped: Always use the cluster-wide path.
        """
        super().__init__(name=str(gvr), resync=resync)
        self._api_client = api_client
        self._gvr = gvr
        self._namespace = namespace
        self._path = collection_path(gvr, namespace, cluster_scoped)
        self._store = ObjectStore()
        self._synced = asyncio.Event()
        # Set when the initial listing was refused (403) or not served (404/405)
        self._unservable = asyncio.Event()

    @property
    def gvr(self) -> ResourceIdentity:
        return self._gvr

    @property
    def path(self) -> str:
        return self._path

    @property
    def has_synced(self) -> bool:
        """True once the initial full listing has been stored."""
        return self._synced.is_set()

    @property
    def unservable(self) -> bool:
        """True while the collection is refused or not served and has never synced."""
        return self._unservable.is_set() and not self._synced.is_set()

    async def wait_for_sync(self, stop: asyncio.Event) -> bool:
        """Block until the initial listing landed, failed for good, or ``stop`` fired.

        Returns True if synced. Returns False if the stop signal came first
        or the server refused or does not serve the collection; the
        informer keeps retrying in the background either way.
        """
        if self._synced.is_set():
            return True
        if stop.is_set() or self._unservable.is_set():
            return False
        waiters = {
            asyncio.ensure_future(self._synced.wait()),
            asyncio.ensure_future(self._unservable.wait()),
            asyncio.ensure_future(stop.wait()),
        }
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        return self._synced.is_set()

    def lister(self) -> Lister:
        return Lister(self._store)

    def list_keys(self) -> builtins.list[str]:
        return self._store.list_keys()

    # ------------------------------------------------------------------
    # BaseWatcher hooks
    # ------------------------------------------------------------------

    async def _list_func(self, **kwargs: Any) -> Any:
        """Issue a GET on the collection; ``watch=True`` opens a stream."""
        query: list[tuple[str, Any]] = []
        if kwargs.get("watch"):
            query.append(("watch", "true"))
        for arg, param in _LIST_QUERY_PARAMS:
            value = kwargs.get(arg)
            if value is None or value == "":
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            query.append((param, value))

        return await self._api_client.call_api(
            self._path,
            "GET",
            path_params={},
            query_params=query,
            header_params={"Accept": "application/json"},
            response_type="object",
            auth_settings=["BearerToken"],
            _return_http_data_only=True,
            _preload_content=kwargs.get("_preload_content", True),
            _request_timeout=kwargs.get("_request_timeout"),
        )

    async def _handle_event(self, event_type: str, obj: dict[str, Any]) -> None:
        if event_type in ("ADDED", "MODIFIED"):
            self._store.update(obj)
        elif event_type == "DELETED":
            self._store.delete(obj)
        else:
            self._log.debug("watch_event_ignored", watcher=self._name, event_type=event_type)
            return
        cache_objects.labels(gvr=self._name, scope=self._namespace).set(len(self._store))

    def _replace(self, items: builtins.list[dict[str, Any]], resource_version: str) -> None:
        self._store.replace(items)
        cache_objects.labels(gvr=self._name, scope=self._namespace).set(len(self._store))
        if not self._synced.is_set():
            self._synced.set()
            self._log.info(
                "informer_synced",
                gvr=self._name,
                namespace=self._namespace,
                count=len(self._store),
                resource_version=resource_version,
            )
        self._unservable.clear()

    def _on_unservable(self, status: int) -> None:
        if self._synced.is_set() or self._unservable.is_set():
            return
        self._unservable.set()
        self._log.info("informer_unservable", gvr=self._name, namespace=self._namespace, status=status)
