"""Process-local backend registry."""

from __future__ import annotations

import threading

import structlog

from backendsync.models.backends import BackendAddress
from backendsync.registry.base import RegistryAdapter

_log = structlog.get_logger(component="registry.memory")


class InMemoryRegistry(RegistryAdapter):
    """Name → address map guarded by a lock.

    The reconciliation loop is the only writer; routing code and the admin
    API may read from other threads through ``get`` and ``entries``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._servers: dict[str, BackendAddress] = {}

    @property
    def adapter_name(self) -> str:
        return "memory"

    async def has(self, name: str) -> bool:
        with self._lock:
            return name in self._servers

    async def register(self, name: str, address: BackendAddress) -> bool:
        with self._lock:
            existing = self._servers.get(name)
            if existing is None:
                self._servers[name] = address
                return True
        _log.debug("register_noop_already_present", name=name, address=str(existing))
        return True

    async def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._servers.pop(name, None)
        if removed is None:
            _log.debug("unregister_noop_absent", name=name)
        return True

    def get(self, name: str) -> BackendAddress | None:
        with self._lock:
            return self._servers.get(name)

    def entries(self) -> dict[str, BackendAddress]:
        """Snapshot copy of the registry contents."""
        with self._lock:
            return dict(self._servers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)
