"""Reconciliation loop.

Pulls notifications from the watch session one at a time, classifies them
and applies the result to the registry and the tracker.  Processing is
strictly sequential: every registry call of one notification completes
before the next notification is pulled, and the tracker is only updated
after the registry confirmed the mutation.

Failures of individual registry calls are logged and skipped.  Only a
ClusterAuthError from the session ends the loop; it is reported through
``on_fatal`` so the hosting process can exit.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import aclosing
from typing import Any

import structlog

from backendsync.collector.classifier import classify
from backendsync.errors import ClusterAuthError
from backendsync.models.backends import BackendAddress, BackendCandidate
from backendsync.models.config import ClusterConfig
from backendsync.models.events import Action, Defer, Ignore, Notification, Tombstone, Upsert
from backendsync.observability.metrics import events_total, registry_operations_total, tracked_backends
from backendsync.reconciler.tracker import PodStateTracker
from backendsync.registry.base import RegistryAdapter


class ReconciliationLoop:
    """The single consumer of a WatchSessionManager.

    Args:
        session:  Source of notifications (``events(known_names=...)``).
        registry: Adapter for the proxy's backend registry.
        rules:    Namespace, role label and backend port.
        tracker:  Optional pre-built tracker (tests); a fresh one otherwise.
        on_fatal: Called with the exception when the loop dies.
    """

    def __init__(
        self,
        session: Any,
        registry: RegistryAdapter,
        rules: ClusterConfig | None = None,
        tracker: PodStateTracker | None = None,
        on_fatal: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._rules = rules or ClusterConfig()
        self._tracker = tracker if tracker is not None else PodStateTracker()
        self._on_fatal = on_fatal
        self._log = structlog.get_logger(component="reconciler.loop")

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._shutdown = False
        self._fatal_error: BaseException | None = None

    @property
    def tracker(self) -> PodStateTracker:
        return self._tracker

    @property
    def fatal_error(self) -> BaseException | None:
        return self._fatal_error

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the loop as a background task.  Idempotent."""
        if self._task is not None and not self._task.done():
            return
        self._shutdown = False
        self._task = asyncio.create_task(self._run_guarded(), name="reconciliation-loop")

    async def stop(self) -> None:
        """Stop issuing mutations, release the watch, and wait for the task."""
        self._shutdown = True
        await self._session.close()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._running = False

    async def run(self) -> None:
        """Consume the session until it ends or the loop is stopped."""
        self._running = True
        try:
            async with aclosing(self._session.events(known_names=self._tracker.known_names)) as events:
                async for notification in events:
                    if self._shutdown:
                        break
                    await self.process(notification)
        finally:
            self._running = False

    async def _run_guarded(self) -> None:
        try:
            await self.run()
        except ClusterAuthError as exc:
            self._log.critical("backend_discovery_stopped", error=str(exc), status=exc.status)
            self._fail(exc)
        except Exception as exc:
            self._log.critical("reconciliation_loop_crashed", error=str(exc), error_type=type(exc).__name__)
            self._fail(exc)

    def _fail(self, exc: BaseException) -> None:
        self._fatal_error = exc
        if self._on_fatal is not None:
            self._on_fatal(exc)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, notification: Notification) -> Action:
        """Classify and apply one notification; returns the action taken."""
        action = classify(notification, self._rules)
        events_total.labels(kind=notification.kind.value, action=type(action).__name__.lower()).inc()

        if isinstance(action, Upsert):
            await self._apply_upsert(action.candidate)
        elif isinstance(action, Tombstone):
            await self._apply_tombstone(action)
        elif isinstance(action, Defer):
            await self._apply_defer(action)
        elif isinstance(action, Ignore):
            self._log.debug(
                "notification_ignored",
                reason=action.reason,
                name=action.name,
                kind=notification.kind.value,
            )

        tracked_backends.set(len(self._tracker))
        return action

    async def _apply_upsert(self, candidate: BackendCandidate) -> None:
        name = candidate.name
        address = candidate.address
        assert address is not None

        known = self._tracker.lookup(name)
        present = await self._has(name)
        if present is None:
            return

        if known == address and present:
            self._tracker.clear_pending(name)
            return

        if present:
            # Registered elsewhere or at an old address: register() would
            # keep the stale entry, so remove it first.
            self._log.info(
                "backend_address_replaced",
                name=name,
                old_address=str(known) if known is not None else None,
                new_address=str(address),
            )
            if not await self._unregister(name):
                return
            self._tracker.forget(name)

        if not await self._register(name, address):
            return
        self._tracker.record_upsert(name, address)
        self._log.info("backend_registered", name=name, address=str(address))

    async def _apply_defer(self, action: Defer) -> None:
        name = action.name
        if self._tracker.lookup(name) is not None:
            # The pod lost its address (recreated under the same name, or
            # relisted unscheduled): the registered address is dead.
            await self._apply_tombstone(Tombstone(name=name, reason="address_lost"))
            if name in self._tracker:
                return
        self._tracker.mark_pending(name)
        self._log.debug("backend_pending_address", name=name, phase=action.candidate.phase.value)

    async def _apply_tombstone(self, action: Tombstone) -> None:
        name = action.name
        self._tracker.clear_pending(name)
        if self._tracker.lookup(name) is None:
            self._log.debug("tombstone_untracked", name=name, reason=action.reason)
            return
        if not await self._unregister(name):
            return
        self._tracker.forget(name)
        self._log.info("backend_unregistered", name=name, reason=action.reason, phase=action.candidate.phase.value)

    # ------------------------------------------------------------------
    # Registry calls
    # ------------------------------------------------------------------

    async def _has(self, name: str) -> bool | None:
        """Registry lookup; None when the lookup itself failed."""
        try:
            return await self._registry.has(name)
        except Exception as exc:
            self._log.error(
                "registry_lookup_error",
                adapter=self._registry.adapter_name,
                name=name,
                error=str(exc),
            )
            registry_operations_total.labels(operation="has", result="error").inc()
            return None

    async def _register(self, name: str, address: BackendAddress) -> bool:
        if self._shutdown:
            return False
        try:
            ok = await self._registry.register(name, address)
        except Exception as exc:
            self._log.error(
                "registry_register_error",
                adapter=self._registry.adapter_name,
                name=name,
                error=str(exc),
            )
            ok = False
        registry_operations_total.labels(operation="register", result="success" if ok else "failure").inc()
        if not ok:
            self._log.warning("backend_register_failed", name=name, address=str(address))
        return ok

    async def _unregister(self, name: str) -> bool:
        if self._shutdown:
            return False
        try:
            ok = await self._registry.unregister(name)
        except Exception as exc:
            self._log.error(
                "registry_unregister_error",
                adapter=self._registry.adapter_name,
                name=name,
                error=str(exc),
            )
            ok = False
        registry_operations_total.labels(operation="unregister", result="success" if ok else "failure").inc()
        if not ok:
            self._log.warning("backend_unregister_failed", name=name)
        return ok
