"""Watch-backed resource caches.

Submodules:
    paths     -- Resource identifier and object path parsing.
    selector  -- Label selectors.
    store     -- Local object store and listers.
    informer  -- Watch cache for one identity in one scope.
    scope     -- Per-scope set of informers.
    factory   -- Authorization gated cache factory with port-forward registry.
"""

from kubemirror.cache.factory import CacheFactory
from kubemirror.cache.paths import namespaced, to_gvr
from kubemirror.cache.selector import Selector

__all__ = ["CacheFactory", "Selector", "namespaced", "to_gvr"]
