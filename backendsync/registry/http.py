"""Registry adapter for a proxy that exposes an admin HTTP API.

Endpoints (relative to ``base_url``):

    GET    /servers/{name}   200 if present, 404 if absent
    PUT    /servers/{name}   body {"host": ..., "port": ...}
    DELETE /servers/{name}

409 on PUT and 404 on DELETE are treated as idempotent successes.  A lookup
that gets no definite answer raises RegistryError.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from backendsync.errors import RegistryError
from backendsync.models.backends import BackendAddress
from backendsync.registry.base import RegistryAdapter

_log = structlog.get_logger(component="registry.http")


class HttpRegistryAdapter(RegistryAdapter):
    """Registers backends by calling the proxy's admin API.

    Args:
        base_url:  Admin API root, e.g. ``http://proxy:8081/api``.
        headers:   Optional extra headers (e.g. Authorization).
        timeout:   HTTP request timeout in seconds. Defaults to 5.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Registry base_url must not be empty")
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def adapter_name(self) -> str:
        return "http"

    def _url(self, name: str) -> str:
        return f"{self._base_url}/servers/{quote(name, safe='')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, headers=self._headers, transport=self._transport)

    async def has(self, name: str) -> bool:
        """Raises RegistryError when the proxy gives no definite answer."""
        try:
            async with self._client() as client:
                response = await client.get(self._url(name))
        except httpx.HTTPError as exc:
            raise RegistryError(f"lookup of {name!r} failed: {exc}") from exc
        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        raise RegistryError(f"lookup of {name!r} returned HTTP {response.status_code}")

    async def register(self, name: str, address: BackendAddress) -> bool:
        payload = {"host": address.host, "port": address.port}
        try:
            async with self._client() as client:
                response = await client.put(self._url(name), json=payload)
        except httpx.TimeoutException:
            _log.warning("registry_register_timeout", name=name, url=self._base_url)
            return False
        except httpx.HTTPError as exc:
            _log.warning("registry_register_http_error", name=name, error=str(exc))
            return False

        if response.is_success or response.status_code == 409:
            return True
        _log.warning(
            "registry_register_non_2xx_response",
            name=name,
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False

    async def unregister(self, name: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.delete(self._url(name))
        except httpx.TimeoutException:
            _log.warning("registry_unregister_timeout", name=name, url=self._base_url)
            return False
        except httpx.HTTPError as exc:
            _log.warning("registry_unregister_http_error", name=name, error=str(exc))
            return False

        if response.is_success or response.status_code == 404:
            return True
        _log.warning(
            "registry_unregister_non_2xx_response",
            name=name,
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False
