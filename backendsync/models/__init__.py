"""Core data structures for backendsync."""

from backendsync.models.backends import (
    BackendAddress,
    BackendCandidate,
    CandidatePhase,
    RegistrationRecord,
)
from backendsync.models.config import BackendSyncConfig
from backendsync.models.events import (
    Action,
    Defer,
    Ignore,
    Notification,
    PodSnapshot,
    Tombstone,
    Upsert,
    WatchEventType,
)

__all__ = [
    "Action",
    "BackendAddress",
    "BackendCandidate",
    "BackendSyncConfig",
    "CandidatePhase",
    "Defer",
    "Ignore",
    "Notification",
    "PodSnapshot",
    "RegistrationRecord",
    "Tombstone",
    "Upsert",
    "WatchEventType",
]
