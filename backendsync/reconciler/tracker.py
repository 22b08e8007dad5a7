"""Pod state tracker.

Deletion events may arrive without an address (or with one that no longer
matches what was registered), so deregistration is resolved from here rather
than from the event body.  Records are only written after the registry has
confirmed a mutation, which keeps the tracker a subset of the registry.

Owned by the ReconciliationLoop; never shared across tasks or threads.
"""

from __future__ import annotations

from datetime import UTC, datetime

from backendsync.models.backends import BackendAddress, RegistrationRecord


class PodStateTracker:
    """In-process map of pod name → RegistrationRecord, plus pending names."""

    def __init__(self) -> None:
        self._records: dict[str, RegistrationRecord] = {}
        # Eligible pods seen without an address yet; diagnostics only.
        self._pending: dict[str, datetime] = {}

    def record_upsert(self, name: str, address: BackendAddress) -> RegistrationRecord:
        """Store the confirmed registration of *name* at *address*."""
        record = RegistrationRecord(name=name, address=address, registered=True)
        self._records[name] = record
        self._pending.pop(name, None)
        return record

    def lookup(self, name: str) -> BackendAddress | None:
        """Last registered address for *name*, or None if untracked."""
        record = self._records.get(name)
        return record.address if record is not None else None

    def get(self, name: str) -> RegistrationRecord | None:
        return self._records.get(name)

    def forget(self, name: str) -> None:
        """Drop the record for *name* after confirmed deregistration."""
        self._records.pop(name, None)

    def mark_pending(self, name: str) -> None:
        if name not in self._records:
            self._pending.setdefault(name, datetime.now(tz=UTC))

    def clear_pending(self, name: str) -> None:
        self._pending.pop(name, None)

    def is_pending(self, name: str) -> bool:
        return name in self._pending

    def names(self) -> set[str]:
        """Names with a confirmed registration."""
        return set(self._records)

    def pending_names(self) -> set[str]:
        return set(self._pending)

    def known_names(self) -> set[str]:
        """Every name the tracker holds state for, registered or pending."""
        return set(self._records) | set(self._pending)

    def records(self) -> list[RegistrationRecord]:
        return sorted(self._records.values(), key=lambda r: r.name)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records
