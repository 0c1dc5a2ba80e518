"""Shared stub collaborators for kubemirror tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from kubemirror.cache.informer import collection_path
from kubemirror.cache.store import Lister, ObjectStore
from kubemirror.models.resources import ForwardState, ResourceIdentity


class StubConnection:
    """Connection stub counting dial handles and authorization checks."""

    def __init__(self, allowed: bool = True, error: Exception | None = None) -> None:
        self.allowed = allowed
        self.error = error
        self.dial_calls = 0
        self.auth_calls: list[tuple[str, str, list[str]]] = []

    def dial(self) -> Any:
        self.dial_calls += 1
        return object()

    async def can_i(self, ns: str, gvr: str, verbs: list[str]) -> bool:
        self.auth_calls.append((ns, gvr, verbs))
        if self.error is not None:
            raise self.error
        return self.allowed


class FakeInformer:
    """Stand-in for ResourceInformer: no background task, manual sync."""

    def __init__(
        self,
        api_client: Any,
        gvr: ResourceIdentity,
        namespace: str,
        resync: float,
        cluster_scoped: bool = False,
    ) -> None:
        self.api_client = api_client
        self.gvr = gvr
        self.namespace = namespace
        self.resync = resync
        self.cluster_scoped = cluster_scoped
        self.path = collection_path(gvr, namespace, cluster_scoped)
        self.store = ObjectStore()
        self.queries = 0
        self.start_calls: list[asyncio.Event] = []
        self.join_calls = 0
        self._synced = asyncio.Event()

    @property
    def started(self) -> bool:
        return bool(self.start_calls)

    def start(self, stop: asyncio.Event) -> None:
        self.start_calls.append(stop)

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    def mark_synced(self) -> None:
        self._synced.set()

    async def wait_for_sync(self, stop: asyncio.Event) -> bool:
        if self._synced.is_set():
            return True
        synced = asyncio.ensure_future(self._synced.wait())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({synced, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            synced.cancel()
            stopped.cancel()
        return self._synced.is_set()

    def lister(self) -> Lister:
        self.queries += 1
        return Lister(self.store)

    def list_keys(self) -> list[str]:
        return self.store.list_keys()

    async def join(self) -> None:
        self.join_calls += 1


class FakeSession:
    """Forward session stub recording stop calls."""

    def __init__(self, path: str, fail_stop: bool = False) -> None:
        self._path = path
        self._state = ForwardState.STOPPED
        self.fail_stop = fail_stop
        self.stop_calls = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def state(self) -> ForwardState:
        return self._state

    async def start(self) -> None:
        self._state = ForwardState.RUNNING

    async def stop(self) -> None:
        self.stop_calls += 1
        self._state = ForwardState.STOPPED
        if self.fail_stop:
            raise RuntimeError(f"cannot stop {self._path}")


@pytest.fixture
def stub_connection() -> StubConnection:
    return StubConnection()


@pytest.fixture
def fake_informers(monkeypatch: pytest.MonkeyPatch) -> list[FakeInformer]:
    """Replace ResourceInformer inside scope sets; returns every instance created."""
    created: list[FakeInformer] = []

    def _factory(*args: Any, **kwargs: Any) -> FakeInformer:
        informer = FakeInformer(*args, **kwargs)
        created.append(informer)
        return informer

    monkeypatch.setattr("kubemirror.cache.scope.ResourceInformer", _factory)
    return created


@pytest.fixture
def make_session() -> type[FakeSession]:
    return FakeSession


def pod(name: str, namespace: str = "default", labels: dict[str, str] | None = None, rv: str = "1") -> dict[str, Any]:
    """Return a minimal raw Pod dict."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels or {},
            "resourceVersion": rv,
        },
        "spec": {"containers": [{"name": "app", "image": "nginx:latest"}]},
    }


@pytest.fixture
def make_pod() -> Any:
    return pod


@pytest.fixture
def connection_cls() -> type[StubConnection]:
    return StubConnection


@pytest.fixture
def informer_cls() -> type[FakeInformer]:
    return FakeInformer
