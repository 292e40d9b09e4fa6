"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ControlPlaneConfig:
    """Control plane endpoint and transport retry policy."""

    endpoint: str = "https://api.clusterdelta.io"
    api_key: str = ""
    timeout_seconds: float = 30.0
    max_attempts: int = 5
    retry_backoff_seconds: float = 1.0


@dataclass
class ExportConfig:
    """Export trigger and payload shaping."""

    interval_seconds: int = 60
    full_snapshot_every: int = 10
    heartbeat_interval_seconds: int = 60
    disable_workload_uploading: bool = False


@dataclass
class MetricsConfig:
    """Prometheus exposition. Port 0 disables the endpoint."""

    port: int = 0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class ClusterDeltaConfig:
    """Top-level clusterdelta configuration."""

    cluster_id: str = ""
    cluster_name: str = ""
    region: str = ""
    cloud_provider: str = "aws"
    control_plane: ControlPlaneConfig = field(default_factory=ControlPlaneConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
