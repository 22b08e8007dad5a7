"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_BACKEND_PORT = 25565


@dataclass
class ClusterConfig:
    """Which pods count as backends."""

    namespace: str = "default"
    label_key: str = "app"
    label_value: str = "server"
    backend_port: int = DEFAULT_BACKEND_PORT

    @property
    def label_selector(self) -> str:
        return f"{self.label_key}={self.label_value}"


@dataclass
class WatchConfig:
    """Watch session timing."""

    timeout_seconds: int = 300
    backoff_min_seconds: float = 1.0
    backoff_max_seconds: float = 60.0


@dataclass
class RegistryConfig:
    """Backend registry adapter selection."""

    mode: str = "memory"
    url: str = ""
    timeout_seconds: float = 5.0


@dataclass
class APIConfig:
    """Admin REST API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class BackendSyncConfig:
    """Top-level backendsync configuration."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
