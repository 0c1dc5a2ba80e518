"""Prometheus metrics for kubemirror."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Informer metrics
informer_events_total = Counter(
    "kubemirror_informer_events_total",
    "Total watch events applied to local stores",
    ["gvr", "event_type"],
)

informer_errors_total = Counter(
    "kubemirror_informer_errors_total",
    "Total list/watch API errors",
    ["gvr", "status_code"],
)

informer_relists_total = Counter(
    "kubemirror_informer_relists_total",
    "Total full relists",
    ["gvr", "reason"],
)

informer_backoff_seconds = Histogram(
    "kubemirror_informer_backoff_seconds",
    "Informer back-off delay in seconds",
    ["gvr"],
    buckets=(1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0),
)

cache_objects = Gauge(
    "kubemirror_cache_objects",
    "Number of objects held in a local store",
    ["gvr", "scope"],
)

# Factory metrics
scope_caches = Gauge(
    "kubemirror_scope_caches",
    "Number of scope cache sets owned by the factory",
)

access_denied_total = Counter(
    "kubemirror_access_denied_total",
    "Total reads refused by the authorization check",
    ["verb"],
)

# Port-forward metrics
forwarders_active = Gauge(
    "kubemirror_forwarders",
    "Number of registered port-forward sessions",
)

forward_connections_total = Counter(
    "kubemirror_forward_connections_total",
    "Total tunnelled connections accepted by port-forward sessions",
)
