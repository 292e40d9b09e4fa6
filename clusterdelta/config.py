"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from clusterdelta.cluster.nodes import ALLOWED_CLOUD_PROVIDERS
from clusterdelta.models.config import (
    ClusterDeltaConfig,
    ControlPlaneConfig,
    ExportConfig,
    LogConfig,
    MetricsConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"CLUSTERDELTA_{key}", default)


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


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_endpoint(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"Invalid control plane endpoint: {value}. Must start with http:// or https://")
    return value.rstrip("/")


def _validate_cloud_provider(value: str) -> str:
    if value.lower() not in ALLOWED_CLOUD_PROVIDERS:
        raise ValueError(f"Invalid cloud provider: {value}. Must be one of {sorted(ALLOWED_CLOUD_PROVIDERS)}")
    return value.lower()


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> ClusterDeltaConfig:
    """Load configuration from CLUSTERDELTA_* environment variables."""
    return ClusterDeltaConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        cluster_name=_env("CLUSTER_NAME", ""),
        region=_env("REGION", ""),
        cloud_provider=_validate_cloud_provider(_env("CLOUD_PROVIDER", "aws")),
        control_plane=ControlPlaneConfig(
            endpoint=_validate_endpoint(_env("ENDPOINT", "https://api.clusterdelta.io")),
            api_key=_env("API_KEY", ""),
            timeout_seconds=_env_float("TIMEOUT", 30.0, min_val=1.0),
            max_attempts=_env_int("MAX_ATTEMPTS", 5, min_val=1, max_val=10),
            retry_backoff_seconds=_env_float("RETRY_BACKOFF", 1.0, min_val=0.0),
        ),
        export=ExportConfig(
            interval_seconds=_env_int("EXPORT_INTERVAL", 60, min_val=10, max_val=3600),
            full_snapshot_every=_env_int("FULL_SNAPSHOT_EVERY", 10, min_val=1, max_val=1000),
            heartbeat_interval_seconds=_env_int("HEARTBEAT_INTERVAL", 60, min_val=10, max_val=3600),
            disable_workload_uploading=_env_bool("DISABLE_WORKLOAD_UPLOADING", False),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
