"""Unit tests for backendsync.config: environment-driven configuration."""

from __future__ import annotations

import pytest

from backendsync.config import load_config
from backendsync.models.config import DEFAULT_BACKEND_PORT

_PREFIX = "BACKENDSYNC_"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith(_PREFIX):
            monkeypatch.delenv(key)


def _set(monkeypatch: pytest.MonkeyPatch, **values: str) -> None:
    for key, value in values.items():
        monkeypatch.setenv(f"{_PREFIX}{key}", value)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()

        assert config.cluster.namespace == "default"
        assert config.cluster.label_selector == "app=server"
        assert config.cluster.backend_port == DEFAULT_BACKEND_PORT == 25565
        assert config.watch.timeout_seconds == 300
        assert config.watch.backoff_min_seconds == 1.0
        assert config.watch.backoff_max_seconds == 60.0
        assert config.registry.mode == "memory"
        assert config.api.enabled is True
        assert config.api.port == 8080
        assert config.log.level == "info"


class TestOverrides:
    def test_cluster_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, NAMESPACE="games", LABEL_KEY="role", LABEL_VALUE="backend", BACKEND_PORT="25566")

        config = load_config()

        assert config.cluster.namespace == "games"
        assert config.cluster.label_selector == "role=backend"
        assert config.cluster.backend_port == 25566

    def test_http_registry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, REGISTRY_MODE="HTTP", REGISTRY_URL="http://proxy:8000/", REGISTRY_TIMEOUT="2.5")

        config = load_config()

        assert config.registry.mode == "http"
        assert config.registry.url == "http://proxy:8000"
        assert config.registry.timeout_seconds == 2.5

    @pytest.mark.parametrize(("raw", "expected"), [("false", False), ("0", False), ("yes", True), ("TRUE", True)])
    def test_api_enabled_flag(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        _set(monkeypatch, API_ENABLED=raw)

        assert load_config().api.enabled is expected

    @pytest.mark.parametrize(
        ("key", "raw", "attr", "expected"),
        [
            ("WATCH_TIMEOUT", "5", "timeout", 30),
            ("WATCH_TIMEOUT", "99999", "timeout", 3600),
            ("API_PORT", "80", "api_port", 1024),
            ("BACKEND_PORT", "0", "backend_port", 1),
            ("BACKEND_PORT", "70000", "backend_port", 65535),
        ],
    )
    def test_numeric_values_are_clamped(
        self, monkeypatch: pytest.MonkeyPatch, key: str, raw: str, attr: str, expected: int
    ) -> None:
        _set(monkeypatch, **{key: raw})
        config = load_config()

        actual = {
            "timeout": config.watch.timeout_seconds,
            "api_port": config.api.port,
            "backend_port": config.cluster.backend_port,
        }[attr]
        assert actual == expected


class TestValidation:
    @pytest.mark.parametrize("namespace", ["Games", "-games", "games_1", "a" * 64, ""])
    def test_invalid_namespace(self, monkeypatch: pytest.MonkeyPatch, namespace: str) -> None:
        _set(monkeypatch, NAMESPACE=namespace)

        with pytest.raises(ValueError, match="namespace"):
            load_config()

    @pytest.mark.parametrize("value", ["", "a=b", "a,b"])
    def test_invalid_label_value(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        _set(monkeypatch, LABEL_VALUE=value)

        with pytest.raises(ValueError, match="label value"):
            load_config()

    def test_http_mode_requires_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, REGISTRY_MODE="http")

        with pytest.raises(ValueError, match="REGISTRY_URL"):
            load_config()

    def test_unknown_registry_mode(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, REGISTRY_MODE="redis")

        with pytest.raises(ValueError, match="registry mode"):
            load_config()

    def test_unknown_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, LOG_LEVEL="verbose")

        with pytest.raises(ValueError, match="log level"):
            load_config()

    @pytest.mark.parametrize(("low", "high"), [("0", "60"), ("10", "5"), ("-1", "60")])
    def test_invalid_backoff_bounds(self, monkeypatch: pytest.MonkeyPatch, low: str, high: str) -> None:
        _set(monkeypatch, BACKOFF_MIN=low, BACKOFF_MAX=high)

        with pytest.raises(ValueError, match="backoff"):
            load_config()

    def test_non_numeric_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _set(monkeypatch, BACKEND_PORT="minecraft")

        with pytest.raises(ValueError):
            load_config()
