"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from backendsync.models.backends import BackendAddress

# Chatty per-request loggers of the HTTP and cluster clients.
_QUIET_LIBRARIES = ("httpx", "httpcore", "aiohttp.access")


def _render_addresses(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Log BackendAddress values as ``host:port``."""
    for key, value in event_dict.items():
        if isinstance(value, BackendAddress):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(level: str = "info", namespace: str | None = None) -> None:
    """Configure structlog for JSON output to stderr.

    When *namespace* is given it is bound to every record, so logs of
    several deployments watching different namespaces can be told apart.
    Standard-library loggers (uvicorn, kubernetes_asyncio) write plain
    messages to the same stream at the same level.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(name)s: %(message)s", stream=sys.stderr, level=log_level, force=True)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _render_addresses,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if namespace:
        structlog.contextvars.bind_contextvars(service="backendsync", namespace=namespace)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
