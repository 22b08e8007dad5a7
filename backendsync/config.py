"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from backendsync.models.config import (
    DEFAULT_BACKEND_PORT,
    APIConfig,
    BackendSyncConfig,
    ClusterConfig,
    LogConfig,
    RegistryConfig,
    WatchConfig,
)

# RFC 1123 label, which is what Kubernetes accepts for namespace names.
_NAMESPACE_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"BACKENDSYNC_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _validate_namespace(value: str) -> str:
    if len(value) > 63 or not _NAMESPACE_RE.match(value):
        raise ValueError(f"Invalid namespace: {value!r}")
    return value


def _validate_label_part(name: str, value: str) -> str:
    if not value or "=" in value or "," in value:
        raise ValueError(f"Invalid {name}: {value!r}")
    return value


def _validate_registry_mode(value: str) -> str:
    valid = {"memory", "http"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid registry mode: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> BackendSyncConfig:
    """Load configuration from BACKENDSYNC_* environment variables."""
    backoff_min = _env_float("BACKOFF_MIN", 1.0)
    backoff_max = _env_float("BACKOFF_MAX", 60.0)
    if backoff_min <= 0 or backoff_max < backoff_min:
        raise ValueError(f"Invalid backoff bounds: min={backoff_min} max={backoff_max}")

    registry = RegistryConfig(
        mode=_validate_registry_mode(_env("REGISTRY_MODE", "memory")),
        url=_env("REGISTRY_URL", "").rstrip("/"),
        timeout_seconds=_env_float("REGISTRY_TIMEOUT", 5.0),
    )
    if registry.mode == "http" and not registry.url:
        raise ValueError("BACKENDSYNC_REGISTRY_URL is required when REGISTRY_MODE=http")

    return BackendSyncConfig(
        cluster=ClusterConfig(
            namespace=_validate_namespace(_env("NAMESPACE", "default")),
            label_key=_validate_label_part("label key", _env("LABEL_KEY", "app")),
            label_value=_validate_label_part("label value", _env("LABEL_VALUE", "server")),
            backend_port=_env_int("BACKEND_PORT", DEFAULT_BACKEND_PORT, min_val=1, max_val=65535),
        ),
        watch=WatchConfig(
            timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
            backoff_min_seconds=backoff_min,
            backoff_max_seconds=backoff_max,
        ),
        registry=registry,
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
