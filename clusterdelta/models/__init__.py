"""Core data structures for clusterdelta."""

from clusterdelta.models.config import ClusterDeltaConfig
from clusterdelta.models.controlplane import (
    ClusterParams,
    ClusterRebalanceConfiguration,
    ClusterRebalanceState,
    ClusterRebalanceStatus,
    RegisterClusterRequest,
    ResponseEnvelope,
    Workload,
    WorkloadRebalanceConfiguration,
)
from clusterdelta.models.deltas import (
    CapacityType,
    EventType,
    NodeDeltaRecord,
    Rebalanced,
    WorkloadDeltaRecord,
    WorkloadType,
    workload_delta_key,
)
from clusterdelta.models.snapshot import ClusterSnapshot, WorkloadResource, WorkloadTable

__all__ = [
    "CapacityType",
    "ClusterDeltaConfig",
    "ClusterParams",
    "ClusterRebalanceConfiguration",
    "ClusterRebalanceState",
    "ClusterRebalanceStatus",
    "ClusterSnapshot",
    "EventType",
    "NodeDeltaRecord",
    "Rebalanced",
    "RegisterClusterRequest",
    "ResponseEnvelope",
    "Workload",
    "WorkloadDeltaRecord",
    "WorkloadRebalanceConfiguration",
    "WorkloadResource",
    "WorkloadTable",
    "WorkloadType",
    "workload_delta_key",
]
