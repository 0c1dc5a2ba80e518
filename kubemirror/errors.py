"""Error taxonomy for cache reads, connections and forward sessions.

Per-request errors (access denied, failed authorization check, missing
cache) are raised to the caller and never affect the factory itself.
"""

from __future__ import annotations


class KubeMirrorError(Exception):
    """Base class for every error raised by kubemirror."""


class AccessDeniedError(KubeMirrorError):
    """The authorization check explicitly refused a verb."""

    def __init__(self, verb: str, namespace: str, gvr: str) -> None:
        super().__init__(f"insufficient access to {verb} {gvr} in namespace {namespace!r}")
        self.verb = verb
        self.namespace = namespace
        self.gvr = gvr


class AuthCheckFailedError(KubeMirrorError):
    """The authorization check could not be completed."""


class CacheNotFoundError(KubeMirrorError):
    """No usable watch cache exists for the requested identity and scope."""

    def __init__(self, gvr: str, namespace: str) -> None:
        super().__init__(f"no resource cache for {gvr!r} in namespace {namespace!r}")
        self.gvr = gvr
        self.namespace = namespace


class DialError(KubeMirrorError):
    """The API server connection handle could not be obtained."""


class FactoryTerminatedError(KubeMirrorError):
    """The cache factory was terminated and can no longer build caches."""


class ForwardStopError(KubeMirrorError):
    """At least one port-forward session failed to stop cleanly."""
