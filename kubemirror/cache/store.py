"""Local object store behind each watch cache.

Objects are raw Kubernetes JSON dicts as delivered by list/watch calls,
keyed ``namespace/name`` (bare ``name`` for cluster-scoped objects).

Only the owning informer task mutates a store. Every read returns a new
list, so callers get a snapshot that later watch events cannot change
underneath them.
"""

from __future__ import annotations

import builtins
from collections.abc import Iterable
from typing import Any

from kubemirror.cache.selector import Selector


def object_key(obj: dict[str, Any]) -> str:
    """Return the store key for a raw object, or "" when it has no name."""
    metadata = obj.get("metadata", {})
    if not isinstance(metadata, dict):
        return ""
    name = str(metadata.get("name") or "")
    if not name:
        return ""
    namespace = str(metadata.get("namespace") or "")
    return f"{namespace}/{name}" if namespace else name


def _labels(obj: dict[str, Any]) -> dict[str, str]:
    metadata = obj.get("metadata", {})
    if not isinstance(metadata, dict):
        return {}
    labels = metadata.get("labels", {})
    return labels if isinstance(labels, dict) else {}


def _namespace(obj: dict[str, Any]) -> str:
    metadata = obj.get("metadata", {})
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("namespace") or "")


class ObjectStore:
    """Keyed store of raw objects with a namespace index."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}
        # namespace -> set of keys
        self._by_namespace: dict[str, set[str]] = {}

    # ------------------------------------------------------------------
    # Write interface (called by the owning informer)
    # ------------------------------------------------------------------

    def add(self, obj: dict[str, Any]) -> None:
        """Insert or overwrite an object. Objects without a name are ignored."""
        key = object_key(obj)
        if not key:
            return
        self._items[key] = obj
        self._by_namespace.setdefault(_namespace(obj), set()).add(key)

    update = add

    def delete(self, obj: dict[str, Any]) -> None:
        key = object_key(obj)
        if key not in self._items:
            return
        del self._items[key]
        ns = _namespace(obj)
        keys = self._by_namespace.get(ns)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._by_namespace[ns]

    def replace(self, items: Iterable[dict[str, Any]]) -> None:
        """Swap the whole content for a fresh listing."""
        fresh: dict[str, dict[str, Any]] = {}
        index: dict[str, set[str]] = {}
        for obj in items:
            key = object_key(obj)
            if not key:
                continue
            fresh[key] = obj
            index.setdefault(_namespace(obj), set()).add(key)
        self._items = fresh
        self._by_namespace = index

    # ------------------------------------------------------------------
    # Read interface
    # ------------------------------------------------------------------

    def get_by_key(self, key: str) -> dict[str, Any] | None:
        return self._items.get(key)

    def list_keys(self) -> builtins.list[str]:
        return sorted(self._items)

    def list(self, selector: Selector | None = None) -> builtins.list[dict[str, Any]]:
        """Return every object matching ``selector``."""
        return [obj for obj in self._items.values() if selector is None or selector.matches(_labels(obj))]

    def list_namespace(self, namespace: str, selector: Selector | None = None) -> builtins.list[dict[str, Any]]:
        """Return objects in one namespace; the empty namespace means all."""
        if not namespace:
            return self.list(selector)
        keys = self._by_namespace.get(namespace, set())
        objs = (self._items[k] for k in sorted(keys))
        return [obj for obj in objs if selector is None or selector.matches(_labels(obj))]

    def __len__(self) -> int:
        return len(self._items)


class Lister:
    """Read-only accessor over a store, scope-wide."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def list(self, selector: Selector | None = None) -> builtins.list[dict[str, Any]]:
        return self._store.list(selector)

    def get(self, name: str) -> dict[str, Any] | None:
        """Look up a cluster-scoped object (or a raw ``namespace/name`` key)."""
        return self._store.get_by_key(name)

    def by_namespace(self, namespace: str) -> NamespaceLister:
        return NamespaceLister(self._store, namespace)


class NamespaceLister:
    """Read-only accessor restricted to one namespace."""

    def __init__(self, store: ObjectStore, namespace: str) -> None:
        self._store = store
        self._namespace = namespace

    def list(self, selector: Selector | None = None) -> builtins.list[dict[str, Any]]:
        return self._store.list_namespace(self._namespace, selector)

    def get(self, name: str) -> dict[str, Any] | None:
        key = f"{self._namespace}/{name}" if self._namespace else name
        return self._store.get_by_key(key)
