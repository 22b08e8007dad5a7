"""Backend registry adapters.

Exports:
    RegistryAdapter     -- Abstract base every adapter implements.
    InMemoryRegistry    -- Process-local registry, safe for concurrent readers.
    HttpRegistryAdapter -- Drives a proxy's admin HTTP API.
    build_registry      -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from backendsync.errors import RegistryError
from backendsync.registry.base import RegistryAdapter
from backendsync.registry.http import HttpRegistryAdapter
from backendsync.registry.memory import InMemoryRegistry

if TYPE_CHECKING:
    from backendsync.models.config import RegistryConfig

__all__ = [
    "HttpRegistryAdapter",
    "InMemoryRegistry",
    "RegistryAdapter",
    "build_registry",
]


def build_registry(config: RegistryConfig) -> RegistryAdapter:
    """Build the adapter selected by ``config.mode``.

    Raises RegistryError for an unknown mode or an http mode without a URL.
    """
    if config.mode == "memory":
        return InMemoryRegistry()
    if config.mode == "http":
        if not config.url:
            raise RegistryError("http registry mode needs a base URL")
        return HttpRegistryAdapter(base_url=config.url, timeout=config.timeout_seconds)
    raise RegistryError(f"unknown registry mode: {config.mode!r}")
