"""Control plane request and response data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from clusterdelta.models.deltas import format_time, parse_time, workload_delta_key

# Envelope codes the control plane uses to signal success.
SUCCESS_CODES = frozenset({0, 200})


@dataclass
class ResponseEnvelope:
    """Standard ``{code, message, data}`` response body."""

    code: int
    message: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code in SUCCESS_CODES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResponseEnvelope:
        code = data.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            raise ValueError(f"Envelope has no integer code: {data!r:.200}")
        return cls(code=code, message=str(data.get("message") or ""), data=data.get("data"))


@dataclass
class ClusterParams:
    """Identity of the managed cluster sent at registration."""

    cluster_name: str
    cluster_version: str = ""
    region: str = ""
    account_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "clusterName": self.cluster_name,
            "clusterVersion": self.cluster_version,
            "region": self.region,
            "accountId": self.account_id,
        }


@dataclass
class RegisterClusterRequest:
    """Body of ``POST /api/v1/clusters/registration``."""

    agent_version: str
    cloud_provider: str
    cluster_params: ClusterParams
    demo: bool = False
    gpu_instances: list[str] = field(default_factory=list)
    arch: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "demo": self.demo,
            "agentVersion": self.agent_version,
            "cloudProvider": self.cloud_provider,
            "gpuInstances": list(self.gpu_instances),
            "arch": list(self.arch),
            "clusterParams": self.cluster_params.to_dict(),
        }


@dataclass
class ClusterRebalanceConfiguration:
    """Cluster-level rebalance switches held by the control plane."""

    enable: bool = False
    upload_config: bool = False
    enable_diversity_instance_type: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "uploadConfig": self.upload_config,
            "enable": self.enable,
            "enableDiversityInstanceType": self.enable_diversity_instance_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterRebalanceConfiguration:
        return cls(
            enable=bool(data.get("enable", False)),
            upload_config=bool(data.get("uploadConfig", False)),
            enable_diversity_instance_type=bool(data.get("enableDiversityInstanceType", False)),
        )


class ClusterRebalanceState(StrEnum):
    """Progress of a cluster rebalance as reported by the agent."""

    APPLYING = "Applying"
    LAUNCHING_REPLACEMENTS = "LaunchingReplacements"
    DRAINING = "Draining"
    TERMINATING = "Terminating"
    FAILED = "Failed"
    SUCCESS = "Success"


@dataclass
class ClusterRebalanceStatus:
    """Rebalance state plus the last time the agent components were active."""

    state: ClusterRebalanceState | None = None
    last_components_active_time: datetime | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value if self.state is not None else "",
            "lastComponentsActiveTime": format_time(self.last_components_active_time),
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterRebalanceStatus:
        state = data.get("state") or None
        return cls(
            state=ClusterRebalanceState(state) if state else None,
            last_components_active_time=parse_time(data.get("lastComponentsActiveTime")),
            message=data.get("message", ""),
        )


@dataclass
class Workload:
    """Per-workload rebalance preferences."""

    name: str
    type: str
    namespace: str
    replicas: int = 0
    rebalance_able: bool = False
    spot_friendly: bool = False
    min_non_spot_replicas: int = 0

    @property
    def key(self) -> str:
        return workload_delta_key(self.type, self.namespace, self.name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Workload:
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            namespace=data.get("namespace", ""),
            replicas=int(data.get("replicas", 0)),
            rebalance_able=bool(data.get("rebalanceAble", False)),
            spot_friendly=bool(data.get("spotFriendly", False)),
            min_non_spot_replicas=int(data.get("minNonSpotReplicas", 0)),
        )


@dataclass
class WorkloadRebalanceConfiguration:
    """Workload preferences keyed by :func:`workload_delta_key`."""

    workloads: list[Workload] = field(default_factory=list)

    def as_map(self) -> dict[str, Workload]:
        return {workload.key: workload for workload in self.workloads}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkloadRebalanceConfiguration:
        return cls(workloads=[Workload.from_dict(raw) for raw in data.get("workloads") or []])
