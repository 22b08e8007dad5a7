"""Watch session management for backend pods.

WatchSessionManager owns the one long-lived pod watch for the configured
namespace and exposes it as an async iterator of Notifications.  Consumers
pull with ``async for``; everything below that boundary (connecting,
reconnecting with exponential back-off, resyncing after the resume token
expires) is invisible to them.

Failure handling:
    410 Gone            -- resume token expired; immediate full resync.
    401 / 403           -- ClusterAuthError, fatal to the consumer.
    other API errors,
    network errors,
    clean stream end    -- back-off and reconnect from the last token; after
                           MAX_CONSECUTIVE_FAILURES a resync is requested
                           (at most one per 5 minutes).

The resume token only advances once the consumer has asked for the next
notification, i.e. after it finished processing the previous one.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import aclosing
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import structlog
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from backendsync.errors import ClusterAuthError
from backendsync.models.config import ClusterConfig, WatchConfig
from backendsync.models.events import Notification, PodSnapshot, WatchEventType
from backendsync.observability.metrics import resyncs_total, watcher_reconnects_total

MAX_CONSECUTIVE_FAILURES = 3
_RELIST_MIN_INTERVAL = timedelta(minutes=5)
_FATAL_STATUSES = frozenset({401, 403})
_CHANGE_TYPES = {t.value: t for t in WatchEventType}

KnownNames = Callable[[], Iterable[str]]


class SessionState(StrEnum):
    """Connection state of the watch session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    RESYNCING = "resyncing"
    SHUTDOWN = "shutdown"


def _no_known_names() -> Iterable[str]:
    return ()


class WatchSessionManager:
    """Resumable pod watch scoped to one namespace and label selector.

    Args:
        api:          kubernetes_asyncio ``CoreV1Api`` (or anything with
                      ``list_namespaced_pod``).
        cluster:      Namespace and eligibility label.
        watch_config: Server-side watch timeout and back-off bounds.
        name:         Watcher name used in logs and metrics.
    """

    def __init__(
        self,
        api: Any,
        cluster: ClusterConfig | None = None,
        watch_config: WatchConfig | None = None,
        name: str = "pod-watcher",
    ) -> None:
        self._api = api
        self._cluster = cluster or ClusterConfig()
        self._watch_config = watch_config or WatchConfig()
        self._name = name
        self._log = structlog.get_logger(component=f"collector.{name}")

        self._state = SessionState.DISCONNECTED
        self._resource_version = ""
        self._backoff_s = self._watch_config.backoff_min_seconds
        self._consecutive_failures = 0
        self._last_relist_at: datetime | None = None
        # First start lists everything, which also yields the first token.
        self._resync_reason: str | None = "initial"

        self._watch: watch.Watch | None = None
        self._active = False
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def resource_version(self) -> str:
        return self._resource_version

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def events(self, known_names: KnownNames = _no_known_names) -> AsyncIterator[Notification]:
        """Yield notifications until close() is called or a fatal error occurs.

        *known_names* is called during a resync, after every listed pod has
        been yielded, to find names the consumer still tracks that the list
        no longer contains; each of those is yielded as a synthetic DELETED.
        """
        if self._active:
            raise RuntimeError(f"watch session '{self._name}' is already active")
        self._active = True
        try:
            while not self._closed:
                try:
                    if self._resync_reason is not None:
                        async with aclosing(self._resync(known_names)) as resync:
                            async for notification in resync:
                                yield notification
                    else:
                        async with aclosing(self._stream()) as stream:
                            async for notification in stream:
                                yield notification
                        if not self._closed:
                            await self._handle_stream_end()
                except ApiException as exc:
                    if self._closed:
                        break
                    await self._handle_api_exception(exc)
                except Exception as exc:
                    if self._closed:
                        break
                    await self._handle_loop_exception(exc)
        finally:
            self._active = False
            await self._close_watch()
            if self._state != SessionState.SHUTDOWN:
                self._state = SessionState.DISCONNECTED

    async def close(self) -> None:
        """Stop consuming and release the active stream.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._state = SessionState.SHUTDOWN
        if self._watch is not None:
            self._watch.stop()
        self._log.info("watch_session_closed", resource_version=self._resource_version)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream(self) -> AsyncIterator[Notification]:
        """Consume one watch stream from the current resume token."""
        self._state = SessionState.CONNECTING
        kwargs: dict[str, Any] = {
            "namespace": self._cluster.namespace,
            "label_selector": self._cluster.label_selector,
            "timeout_seconds": self._watch_config.timeout_seconds,
            "allow_watch_bookmarks": True,
        }
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version

        self._log.debug(
            "watch_connecting",
            namespace=self._cluster.namespace,
            resource_version=self._resource_version or "current",
        )
        self._watch = watch.Watch()
        try:
            async for event in self._watch.stream(self._api.list_namespaced_pod, **kwargs):
                if self._closed:
                    return
                self._state = SessionState.STREAMING
                if not isinstance(event, dict):
                    self._log.debug("watch_event_malformed", payload_type=type(event).__name__)
                    continue

                event_type = event.get("type")
                if event_type == "BOOKMARK":
                    rv = _extract_rv_from_bookmark(event)
                    if rv:
                        self._resource_version = rv
                    self._reset_backoff()
                    continue
                if event_type == "ERROR":
                    raise _api_exception_from_error_event(event)

                kind = _CHANGE_TYPES.get(str(event_type))
                if kind is None:
                    self._log.debug("watch_event_unknown_type", event_type=str(event_type))
                    continue

                obj = event.get("object")
                raw = event.get("raw_object")
                if not isinstance(raw, dict):
                    raw = {}

                snapshot = _snapshot_from_event(obj, raw)
                yield Notification(kind=kind, pod=snapshot)

                # Resumed: the consumer has processed the notification.
                rv = snapshot.resource_version or _extract_rv(obj, raw)
                if rv:
                    self._resource_version = rv
                self._reset_backoff()
        finally:
            await self._close_watch()

    async def _close_watch(self) -> None:
        w = self._watch
        self._watch = None
        if w is None:
            return
        try:
            await w.close()
        except Exception as exc:
            self._log.debug("watch_close_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Resync
    # ------------------------------------------------------------------

    async def _resync(self, known_names: KnownNames) -> AsyncIterator[Notification]:
        """List the eligible pods and yield synthetic notifications for them.

        Listed pods come through as MODIFIED; names the consumer tracks that
        the list does not contain come through as DELETED.  Streaming resumes
        from the list's resourceVersion once all of them were processed.
        """
        reason = self._resync_reason or "requested"
        self._state = SessionState.RESYNCING
        self._log.info("resync_started", reason=reason, namespace=self._cluster.namespace)

        result = await self._api.list_namespaced_pod(
            namespace=self._cluster.namespace,
            label_selector=self._cluster.label_selector,
        )
        self._last_relist_at = datetime.now(UTC)
        resyncs_total.labels(reason=reason).inc()
        self._reset_backoff()

        listed_rv = _extract_list_rv(result)
        snapshots = [_snapshot_from_event(item, item if isinstance(item, dict) else {}) for item in _list_items(result)]

        listed: set[str] = set()
        for snapshot in snapshots:
            if snapshot.name:
                listed.add(snapshot.name)
            yield Notification(kind=WatchEventType.MODIFIED, pod=snapshot, synthetic=True)

        stale = sorted(set(known_names()) - listed)
        for name in stale:
            yield Notification(
                kind=WatchEventType.DELETED,
                pod=PodSnapshot(name=name, namespace=self._cluster.namespace),
                synthetic=True,
            )

        if listed_rv:
            self._resource_version = listed_rv
        else:
            self._log.warning("relist_no_rv", reason=reason)
            self._resource_version = ""
        self._resync_reason = None
        self._log.info(
            "resync_completed",
            reason=reason,
            listed=len(listed),
            stale=len(stale),
            resource_version=self._resource_version,
        )

    async def _relist(self, reason: str) -> None:
        """Request a resync, rate limited to one per _RELIST_MIN_INTERVAL."""
        now = datetime.now(UTC)
        if self._last_relist_at is not None and (now - self._last_relist_at) < _RELIST_MIN_INTERVAL:
            self._log.debug(
                "relist_throttled",
                reason=reason,
                seconds_since_last=int((now - self._last_relist_at).total_seconds()),
            )
            await self._backoff("relist_throttled")
            return
        self._resync_reason = reason

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _handle_stream_end(self) -> None:
        """The server closed the stream; reconnect from the last token."""
        self._consecutive_failures += 1
        watcher_reconnects_total.labels(watcher=self._name, reason="stream_end").inc()
        self._log.debug(
            "watch_stream_ended",
            resource_version=self._resource_version,
            consecutive_failures=self._consecutive_failures,
        )
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            await self._relist(reason="consecutive_failures")
        else:
            await self._backoff("stream_end")

    async def _handle_api_exception(self, exc: ApiException) -> None:
        status = getattr(exc, "status", None)
        reason = getattr(exc, "reason", "") or ""

        if status == 410:
            # Resume token expired: resync right away, never throttled.
            watcher_reconnects_total.labels(watcher=self._name, reason="410").inc()
            self._log.warning("resource_version_expired", resource_version=self._resource_version)
            self._resource_version = ""
            self._resync_reason = "410"
            return

        if status in _FATAL_STATUSES:
            self._state = SessionState.DISCONNECTED
            self._log.critical("cluster_access_denied", status=status, reason=reason)
            raise ClusterAuthError(status, reason) from exc

        self._consecutive_failures += 1
        watcher_reconnects_total.labels(watcher=self._name, reason="api_error").inc()
        self._log.warning(
            "watch_api_error",
            status=status,
            reason=reason,
            consecutive_failures=self._consecutive_failures,
        )
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            await self._relist(reason="api_error_limit")
        else:
            await self._backoff("api_error")

    async def _handle_loop_exception(self, exc: Exception) -> None:
        """Network errors, malformed payloads and anything else unexpected."""
        self._consecutive_failures += 1
        watcher_reconnects_total.labels(watcher=self._name, reason="unexpected").inc()
        self._log.error(
            "watch_error",
            error=str(exc),
            error_type=type(exc).__name__,
            consecutive_failures=self._consecutive_failures,
        )
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            await self._relist(reason="unexpected_limit")
        else:
            await self._backoff("unexpected")

    async def _backoff(self, reason: str) -> None:
        """Sleep for the current delay, then double it up to the maximum."""
        if self._closed:
            return
        self._state = SessionState.RECONNECTING
        self._log.info("watch_backoff", reason=reason, delay_s=self._backoff_s)
        await asyncio.sleep(self._backoff_s)
        self._backoff_s = min(self._backoff_s * 2, self._watch_config.backoff_max_seconds)

    def _reset_backoff(self) -> None:
        self._backoff_s = self._watch_config.backoff_min_seconds
        self._consecutive_failures = 0


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _str_or_none(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _dict_or_empty(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _snapshot_from_event(obj: Any, raw: dict[str, Any]) -> PodSnapshot:
    """Build a PodSnapshot, preferring the deserialized object over *raw*.

    Every field is optional; a missing name yields ``name=None`` and is left
    to the classifier.
    """
    meta = getattr(obj, "metadata", None)
    status = getattr(obj, "status", None)
    raw_meta = _dict_or_empty(raw.get("metadata"))
    raw_status = _dict_or_empty(raw.get("status"))

    labels = getattr(meta, "labels", None)
    if not isinstance(labels, dict):
        labels = raw_meta.get("labels")
    labels = {str(k): str(v) for k, v in _dict_or_empty(labels).items()}

    return PodSnapshot(
        name=_str_or_none(getattr(meta, "name", None)) or _str_or_none(raw_meta.get("name")),
        namespace=_str_or_none(getattr(meta, "namespace", None)) or _str_or_none(raw_meta.get("namespace")) or "",
        labels=labels,
        pod_ip=_str_or_none(getattr(status, "pod_ip", None)) or _str_or_none(raw_status.get("podIP")),
        resource_version=_extract_rv(obj, raw),
    )


def _extract_rv(obj: Any, raw: dict[str, Any]) -> str:
    """Return metadata.resourceVersion from *obj*, falling back to *raw*."""
    meta = getattr(obj, "metadata", None)
    rv = _str_or_none(getattr(meta, "resource_version", None))
    if rv:
        return rv
    return str(_dict_or_empty(raw.get("metadata")).get("resourceVersion") or "")


def _extract_rv_from_bookmark(event: dict[str, Any]) -> str:
    raw = event.get("raw_object")
    if not isinstance(raw, dict):
        return ""
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("resourceVersion") or "")


def _extract_list_rv(result: Any) -> str:
    if isinstance(result, dict):
        return str(_dict_or_empty(result.get("metadata")).get("resourceVersion") or "")
    return _str_or_none(getattr(getattr(result, "metadata", None), "resource_version", None)) or ""


def _list_items(result: Any) -> list[Any]:
    items = result.get("items") if isinstance(result, dict) else getattr(result, "items", None)
    return list(items) if isinstance(items, list) else []


def _api_exception_from_error_event(event: dict[str, Any]) -> ApiException:
    """Turn an ERROR watch event into the ApiException it stands for."""
    raw = _dict_or_empty(event.get("raw_object"))
    code = raw.get("code")
    status = code if isinstance(code, int) else 500
    return ApiException(status=status, reason=str(raw.get("message") or raw.get("reason") or ""))
