"""Backend candidate and registration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class CandidatePhase(StrEnum):
    """Lifecycle phase of a backend candidate."""

    PENDING = "pending"
    READY = "ready"
    REMOVED = "removed"


@dataclass(frozen=True)
class BackendAddress:
    """Host/port pair a backend is reachable on."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class BackendCandidate:
    """One cluster-managed process eligible to receive proxied traffic.

    ``address`` is None until the cluster assigns the pod a network identity.
    """

    name: str
    address: BackendAddress | None = None
    labels: dict[str, str] = field(default_factory=dict)
    removed: bool = False

    @property
    def phase(self) -> CandidatePhase:
        if self.removed:
            return CandidatePhase.REMOVED
        if self.address is None:
            return CandidatePhase.PENDING
        return CandidatePhase.READY


@dataclass
class RegistrationRecord:
    """What the registry was last told about a name.

    Owned by the PodStateTracker; created on confirmed registration and
    dropped on confirmed deregistration.
    """

    name: str
    address: BackendAddress
    registered: bool = True
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
