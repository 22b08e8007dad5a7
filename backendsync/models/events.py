"""Watch notifications and the classifier's action variants."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from backendsync.models.backends import BackendCandidate


class WatchEventType(StrEnum):
    """Kind of change reported by the cluster watch."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class PodSnapshot:
    """The parts of a pod object the classifier looks at.

    Every field is optional: deletion events and malformed payloads may
    carry a partial object body.
    """

    name: str | None = None
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    pod_ip: str | None = None
    resource_version: str = ""


@dataclass(frozen=True)
class Notification:
    """One change notification pulled from the watch session.

    ``synthetic`` marks notifications produced by a resync rather than
    received from the live stream.
    """

    kind: WatchEventType
    pod: PodSnapshot
    synthetic: bool = False


@dataclass(frozen=True)
class Ignore:
    """No action: ineligible or structurally incomplete object."""

    reason: str
    name: str | None = None


@dataclass(frozen=True)
class Upsert:
    """Eligible object with an address: make sure it is registered."""

    candidate: BackendCandidate


@dataclass(frozen=True)
class Defer:
    """Eligible object without an address yet: track as pending only."""

    name: str

    @property
    def candidate(self) -> BackendCandidate:
        return BackendCandidate(name=self.name)


@dataclass(frozen=True)
class Tombstone:
    """Object is gone (or lost eligibility); resolve through the tracker."""

    name: str
    reason: str = "deleted"

    @property
    def candidate(self) -> BackendCandidate:
        return BackendCandidate(name=self.name, removed=True)


Action = Ignore | Upsert | Defer | Tombstone
