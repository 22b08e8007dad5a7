"""Unit tests for backendsync.reconciler.tracker."""

from __future__ import annotations

from backendsync.models.backends import BackendAddress
from backendsync.reconciler.tracker import PodStateTracker

_ADDR = BackendAddress("10.0.0.7", 25565)


class TestPodStateTracker:
    def test_lookup_unknown_returns_none(self) -> None:
        tracker = PodStateTracker()

        assert tracker.lookup("worker-7") is None
        assert "worker-7" not in tracker

    def test_record_upsert_then_lookup(self) -> None:
        tracker = PodStateTracker()

        record = tracker.record_upsert("worker-7", _ADDR)

        assert record.registered is True
        assert tracker.lookup("worker-7") == _ADDR
        assert tracker.get("worker-7") is record
        assert len(tracker) == 1

    def test_record_upsert_overwrites(self) -> None:
        tracker = PodStateTracker()
        tracker.record_upsert("worker-7", _ADDR)

        tracker.record_upsert("worker-7", BackendAddress("10.0.0.8", 25565))

        assert tracker.lookup("worker-7") == BackendAddress("10.0.0.8", 25565)
        assert len(tracker) == 1

    def test_forget_removes_record(self) -> None:
        tracker = PodStateTracker()
        tracker.record_upsert("worker-7", _ADDR)

        tracker.forget("worker-7")

        assert tracker.lookup("worker-7") is None
        assert len(tracker) == 0

    def test_forget_unknown_is_noop(self) -> None:
        tracker = PodStateTracker()

        tracker.forget("ghost")

        assert len(tracker) == 0

    def test_pending_is_cleared_by_registration(self) -> None:
        tracker = PodStateTracker()
        tracker.mark_pending("worker-7")
        assert tracker.is_pending("worker-7")

        tracker.record_upsert("worker-7", _ADDR)

        assert not tracker.is_pending("worker-7")
        assert tracker.pending_names() == set()

    def test_registered_name_is_not_marked_pending(self) -> None:
        tracker = PodStateTracker()
        tracker.record_upsert("worker-7", _ADDR)

        tracker.mark_pending("worker-7")

        assert not tracker.is_pending("worker-7")

    def test_known_names_covers_registered_and_pending(self) -> None:
        tracker = PodStateTracker()
        tracker.record_upsert("a", _ADDR)
        tracker.mark_pending("b")

        assert tracker.names() == {"a"}
        assert tracker.pending_names() == {"b"}
        assert tracker.known_names() == {"a", "b"}

    def test_records_sorted_by_name(self) -> None:
        tracker = PodStateTracker()
        tracker.record_upsert("b", _ADDR)
        tracker.record_upsert("a", _ADDR)

        assert [r.name for r in tracker.records()] == ["a", "b"]
