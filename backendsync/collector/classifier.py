"""Event classification: notification in, Action out.

No side effects and no I/O. Callers decide what each action means for the
registry and the tracker.
"""

from __future__ import annotations

import ipaddress

from backendsync.models.backends import BackendAddress, BackendCandidate
from backendsync.models.config import ClusterConfig
from backendsync.models.events import (
    Action,
    Defer,
    Ignore,
    Notification,
    Tombstone,
    Upsert,
    WatchEventType,
)

_DEFAULT_RULES = ClusterConfig()


def classify(notification: Notification, rules: ClusterConfig = _DEFAULT_RULES) -> Action:
    """Classify *notification* against the eligibility *rules*.

    Deleted events never trust the address in their body; they always become
    a Tombstone that the caller resolves through its own records. A Modified
    event for an object that lost the role label is also a Tombstone, which
    is a no-op for names that were never registered.
    """
    pod = notification.pod
    name = pod.name
    if not name:
        return Ignore(reason="missing_name")

    if notification.kind == WatchEventType.DELETED:
        return Tombstone(name=name)

    if not _is_eligible(pod.labels, rules):
        if notification.kind == WatchEventType.MODIFIED:
            return Tombstone(name=name, reason="ineligible")
        return Ignore(reason="ineligible", name=name)

    if pod.pod_ip is None:
        return Defer(name=name)

    if not _is_ip(pod.pod_ip):
        return Ignore(reason="malformed_address", name=name)

    return Upsert(
        candidate=BackendCandidate(
            name=name,
            address=BackendAddress(host=pod.pod_ip, port=rules.backend_port),
            labels=dict(pod.labels),
        )
    )


def _is_eligible(labels: dict[str, str], rules: ClusterConfig) -> bool:
    return labels.get(rules.label_key) == rules.label_value


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True
