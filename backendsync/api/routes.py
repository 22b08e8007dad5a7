"""Admin API routes."""

from __future__ import annotations

from fastapi import APIRouter, Request

from backendsync.api.schemas import BackendEntry, BackendsResponse, HealthResponse
from backendsync.collector.watcher import SessionState

router = APIRouter()

_DEGRADED_STATES = {SessionState.DISCONNECTED, SessionState.RECONNECTING}


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Liveness plus the current watch session state.

    ``degraded`` means discovery is reconnecting; the proxy keeps serving
    the last known backend set meanwhile.
    """
    from backendsync import __version__

    session = request.app.state.session
    state = SessionState(session.state) if session is not None else SessionState.DISCONNECTED
    if state == SessionState.SHUTDOWN:
        status = "stopping"
    elif state in _DEGRADED_STATES:
        status = "degraded"
    else:
        status = "ok"
    return HealthResponse(
        status=status,
        watch_state=state.value,
        resource_version=getattr(session, "resource_version", "") or "",
        version=__version__,
    )


@router.get("/backends", response_model=BackendsResponse)
async def backends(request: Request) -> BackendsResponse:
    tracker = request.app.state.tracker
    registry = request.app.state.registry

    tracked = [
        BackendEntry(
            name=record.name,
            host=record.address.host,
            port=record.address.port,
            registered_at=record.updated_at.isoformat(),
        )
        for record in tracker.records()
    ]

    registry_view: list[BackendEntry] | None = None
    entries_fn = getattr(registry, "entries", None)
    if callable(entries_fn):
        registry_view = [
            BackendEntry(name=name, host=address.host, port=address.port)
            for name, address in sorted(entries_fn().items())
        ]

    return BackendsResponse(
        namespace=request.app.state.namespace,
        tracked=tracked,
        pending=sorted(tracker.pending_names()),
        registry=registry_view,
    )
