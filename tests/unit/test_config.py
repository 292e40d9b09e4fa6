"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import os

import pytest

from clusterdelta.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("CLUSTERDELTA_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_defaults(self) -> None:
        config = load_config()

        assert config.cloud_provider == "aws"
        assert config.control_plane.endpoint == "https://api.clusterdelta.io"
        assert config.control_plane.max_attempts == 5
        assert config.export.interval_seconds == 60
        assert config.export.full_snapshot_every == 10
        assert config.export.disable_workload_uploading is False
        assert config.metrics.port == 0
        assert config.log.level == "info"


class TestOverrides:
    def test_values_are_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLUSTERDELTA_CLUSTER_ID", "c-123")
        monkeypatch.setenv("CLUSTERDELTA_CLOUD_PROVIDER", "AlibabaCloud")
        monkeypatch.setenv("CLUSTERDELTA_ENDPOINT", "http://cp.internal:8080/")
        monkeypatch.setenv("CLUSTERDELTA_API_KEY", "secret")
        monkeypatch.setenv("CLUSTERDELTA_DISABLE_WORKLOAD_UPLOADING", "yes")
        monkeypatch.setenv("CLUSTERDELTA_LOG_LEVEL", "DEBUG")

        config = load_config()

        assert config.cluster_id == "c-123"
        assert config.cloud_provider == "alibabacloud"
        assert config.control_plane.endpoint == "http://cp.internal:8080"
        assert config.control_plane.api_key == "secret"
        assert config.export.disable_workload_uploading is True
        assert config.log.level == "debug"

    @pytest.mark.parametrize(
        ("key", "raw", "attr", "expected"),
        [
            ("MAX_ATTEMPTS", "0", "max_attempts", 1),
            ("MAX_ATTEMPTS", "50", "max_attempts", 10),
            ("TIMEOUT", "0.1", "timeout_seconds", 1.0),
            ("RETRY_BACKOFF", "-3", "retry_backoff_seconds", 0.0),
        ],
    )
    def test_control_plane_values_are_clamped(
        self, monkeypatch: pytest.MonkeyPatch, key: str, raw: str, attr: str, expected: float
    ) -> None:
        monkeypatch.setenv(f"CLUSTERDELTA_{key}", raw)
        assert getattr(load_config().control_plane, attr) == expected

    def test_export_interval_is_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLUSTERDELTA_EXPORT_INTERVAL", "1")
        monkeypatch.setenv("CLUSTERDELTA_FULL_SNAPSHOT_EVERY", "0")

        config = load_config()

        assert config.export.interval_seconds == 10
        assert config.export.full_snapshot_every == 1


class TestValidation:
    @pytest.mark.parametrize(
        ("key", "raw"),
        [
            ("ENDPOINT", "ftp://cp.example.test"),
            ("CLOUD_PROVIDER", "gcp"),
            ("LOG_LEVEL", "verbose"),
            ("METRICS_PORT", "not-a-number"),
        ],
    )
    def test_invalid_values_raise(self, monkeypatch: pytest.MonkeyPatch, key: str, raw: str) -> None:
        monkeypatch.setenv(f"CLUSTERDELTA_{key}", raw)
        with pytest.raises(ValueError):
            load_config()
