"""Response models for the admin API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-2xx response."""

    error: str
    detail: str = ""


class HealthResponse(BaseModel):
    status: str
    watch_state: str
    resource_version: str = ""
    version: str


class BackendEntry(BaseModel):
    name: str
    host: str
    port: int
    registered_at: str | None = None


class BackendsResponse(BaseModel):
    """Tracker view plus, where the adapter can list, the registry view."""

    namespace: str
    tracked: list[BackendEntry] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    registry: list[BackendEntry] | None = None
