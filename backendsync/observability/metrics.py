"""Prometheus metrics for backendsync.

All collectors are module-level singletons registered on the default
registry; the admin API serves them on ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

events_total = Counter(
    "backendsync_events_total",
    "Watch notifications processed, by event kind and classified action.",
    ["kind", "action"],
)

registry_operations_total = Counter(
    "backendsync_registry_operations_total",
    "Registry mutations attempted, by operation and outcome.",
    ["operation", "result"],
)

watcher_reconnects_total = Counter(
    "backendsync_watcher_reconnects_total",
    "Watch stream re-establishments, by reason.",
    ["watcher", "reason"],
)

resyncs_total = Counter(
    "backendsync_resyncs_total",
    "Full list resyncs performed, by reason.",
    ["reason"],
)

tracked_backends = Gauge(
    "backendsync_tracked_backends",
    "Backends currently registered according to the pod state tracker.",
)
