"""Per-workload rollups built once per export cycle."""

from clusterdelta.aggregation.workloads import (
    AggregationError,
    AggregationResult,
    UnsupportedWorkloadKindError,
    WorkloadAggregator,
    WorkloadKind,
    index_pod_usage,
    workload_kind,
    workload_replicas,
)

__all__ = [
    "AggregationError",
    "AggregationResult",
    "UnsupportedWorkloadKindError",
    "WorkloadAggregator",
    "WorkloadKind",
    "index_pod_usage",
    "workload_kind",
    "workload_replicas",
]
