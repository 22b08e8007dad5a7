"""Registry adapter contract.

The reconciliation loop relies on two properties of every adapter:

* ``register`` of a name that is already present is a successful no-op.
* ``unregister`` of a name that is absent is a successful no-op.

Duplicate or overlapping watch notifications are absorbed by these two
rules, so adapters must honour them even when the underlying proxy API
reports "already exists" / "not found" as errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from backendsync.models.backends import BackendAddress


class RegistryAdapter(ABC):
    """Narrow interface to the proxy's backend registry.

    Mutations should not raise for transport failures; return ``False`` and
    log instead.  The caller leaves its own records untouched on ``False``
    so the name is retried on the next relevant event or resync.
    """

    @property
    @abstractmethod
    def adapter_name(self) -> str:
        """Identifier used in metrics and logs."""

    @abstractmethod
    async def has(self, name: str) -> bool:
        """Return True if *name* is currently registered.

        Raises when presence cannot be determined; False always means absent.
        """

    @abstractmethod
    async def register(self, name: str, address: BackendAddress) -> bool:
        """Register *name* at *address*.  Idempotent for present names."""

    @abstractmethod
    async def unregister(self, name: str) -> bool:
        """Remove *name*.  Idempotent for absent names."""
