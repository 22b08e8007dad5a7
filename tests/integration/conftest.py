"""Shared fixtures for backendsync integration tests.

Provides a scripted fake cluster (pod list responses plus watch streams)
and a fully wired pipeline (watch session → reconciliation loop →
in-memory registry) so tests can exercise whole scenarios without a real
Kubernetes API server.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from backendsync.collector.watcher import WatchSessionManager
from backendsync.models.backends import BackendAddress
from backendsync.models.config import ClusterConfig, WatchConfig
from backendsync.reconciler.loop import ReconciliationLoop
from backendsync.registry.memory import InMemoryRegistry

NAMESPACE = "games"

# ---------------------------------------------------------------------------
# Payload factory helpers
# ---------------------------------------------------------------------------


def make_pod(
    name: str,
    ip: str | None = None,
    rv: str = "1",
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Raw pod object as the API server would send it."""
    pod: dict[str, Any] = {
        "metadata": {
            "name": name,
            "namespace": NAMESPACE,
            "labels": {"app": "server"} if labels is None else labels,
            "resourceVersion": rv,
        },
        "status": {"phase": "Running" if ip else "Pending"},
    }
    if ip is not None:
        pod["status"]["podIP"] = ip
    return pod


def pod_event(event_type: str, name: str, ip: str | None = None, rv: str = "1", **kwargs: Any) -> dict[str, Any]:
    return {"type": event_type, "object": None, "raw_object": make_pod(name, ip, rv, **kwargs)}


def error_event(code: int, message: str = "") -> dict[str, Any]:
    return {"type": "ERROR", "object": None, "raw_object": {"kind": "Status", "code": code, "message": message}}


def pod_list(*pods: dict[str, Any], rv: str) -> dict[str, Any]:
    return {"metadata": {"resourceVersion": rv}, "items": list(pods)}


# ---------------------------------------------------------------------------
# Fake cluster
# ---------------------------------------------------------------------------


class FakeCluster:
    """Scripted stand-in for CoreV1Api plus kubernetes_asyncio's Watch.

    ``list_results`` are served in order (the last one repeats).  Each entry
    of ``streams`` is one watch connection: dict items are delivered as
    events, exception items are raised.  Once the scripts run out, new
    connections block until stopped and ``idle`` is set.
    """

    def __init__(self) -> None:
        self.list_results: deque[Any] = deque()
        self.streams: deque[list[Any]] = deque()
        self.list_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.idle = asyncio.Event()

    async def list_namespaced_pod(self, **kwargs: Any) -> Any:
        self.list_calls.append(kwargs)
        result = self.list_results.popleft() if len(self.list_results) > 1 else self.list_results[0]
        if isinstance(result, BaseException):
            raise result
        return result

    def new_watch(self) -> FakeWatch:
        return FakeWatch(self)


class FakeWatch:
    def __init__(self, cluster: FakeCluster) -> None:
        self._cluster = cluster
        self._stopped = asyncio.Event()
        self.closed = False

    async def stream(self, func: Any, **kwargs: Any) -> AsyncIterator[dict[str, Any]]:
        self._cluster.stream_calls.append(kwargs)
        if not self._cluster.streams:
            self._cluster.idle.set()
            await self._stopped.wait()
            return
        for item in self._cluster.streams.popleft():
            if isinstance(item, BaseException):
                raise item
            yield item

    def stop(self) -> None:
        self._stopped.set()

    async def close(self) -> None:
        self.closed = True


class RecordingRegistry(InMemoryRegistry):
    """InMemoryRegistry that logs every mutation call in order."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    async def register(self, name: str, address: BackendAddress) -> bool:
        self.calls.append(("register", name))
        return await super().register(name, address)

    async def unregister(self, name: str) -> bool:
        self.calls.append(("unregister", name))
        return await super().unregister(name)


class Pipeline:
    """Watch session, reconciliation loop and registry wired together."""

    def __init__(self, cluster: FakeCluster) -> None:
        self.cluster = cluster
        self.registry = RecordingRegistry()
        self.session = WatchSessionManager(
            cluster,
            cluster=ClusterConfig(namespace=NAMESPACE),
            watch_config=WatchConfig(timeout_seconds=60, backoff_min_seconds=0.001, backoff_max_seconds=0.01),
        )
        self.on_fatal = MagicMock()
        self.loop = ReconciliationLoop(
            self.session,
            self.registry,
            rules=ClusterConfig(namespace=NAMESPACE),
            on_fatal=self.on_fatal,
        )

    async def run_until_idle(self, timeout: float = 2.0) -> None:
        """Start the loop and wait until every scripted stream is consumed."""
        await self.loop.start()
        await asyncio.wait_for(self.cluster.idle.wait(), timeout=timeout)

    async def run_until_done(self, timeout: float = 2.0) -> None:
        """Start the loop and wait for it to end on its own (fatal errors)."""
        await self.loop.start()
        task = self.loop._task
        assert task is not None
        await asyncio.wait_for(task, timeout=timeout)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_cluster() -> Iterator[FakeCluster]:
    cluster = FakeCluster()
    with patch("backendsync.collector.watcher.watch.Watch", side_effect=cluster.new_watch):
        yield cluster


@pytest.fixture
async def pipeline(fake_cluster: FakeCluster) -> AsyncIterator[Pipeline]:
    p = Pipeline(fake_cluster)
    yield p
    await p.loop.stop()
