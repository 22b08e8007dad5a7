"""Exception hierarchy for backendsync."""

from __future__ import annotations


class BackendSyncError(Exception):
    """Base class for every error raised by backendsync."""


class ClusterAuthError(BackendSyncError):
    """The cluster API rejected our credentials.

    Fatal: without the watch subscription no backend discovery is possible,
    so this escapes the reconciliation loop to the hosting process.
    """

    def __init__(self, status: int, reason: str = "") -> None:
        super().__init__(f"cluster API refused access ({status} {reason})".strip())
        self.status = status
        self.reason = reason


class RegistryError(BackendSyncError):
    """Raised by a registry adapter that cannot be used as configured."""
