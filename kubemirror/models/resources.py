"""Resource identity and scope data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

# Scope sentinels. Any other scope key is a concrete namespace name.
ALL_NAMESPACES: str = ""
CLUSTER_SCOPE: str = "-"


class ForwardState(StrEnum):
    """Port-forward session lifecycle state."""

    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ResourceIdentity:
    """A (group, version, resource) triple naming a class of remote objects.

    Hashable so it can key the per-scope informer map. The core API group
    is the empty string.
    """

    group: str
    version: str
    resource: str

    def __str__(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}/{self.resource}"
        return f"{self.version}/{self.resource}"

    @property
    def api_version(self) -> str:
        """Return the ``apiVersion`` form (``apps/v1`` or ``v1``)."""
        return f"{self.group}/{self.version}" if self.group else self.version

    def is_complete(self) -> bool:
        """Return True when version and resource are both present."""
        return bool(self.version) and bool(self.resource)


def is_sentinel(namespace: str) -> bool:
    """Return True for the all-namespaces and cluster-scope keys."""
    return namespace in (ALL_NAMESPACES, CLUSTER_SCOPE)
