"""Cluster snapshot aggregate shipped to the control plane."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from clusterdelta.ledger.resources import (
    ResourceLedger,
    ResourceRate,
    ledger_from_quantities,
    ledger_to_quantities,
)
from clusterdelta.models.deltas import NodeDeltaRecord, WorkloadDeltaRecord


@dataclass
class WorkloadResource:
    """Per-owner rollup built by the workload aggregator.

    ``name`` and ``namespace`` stay empty when workload uploading is disabled.
    """

    name: str = ""
    namespace: str = ""
    replicas: int = 0
    ready_replicas: int = 0
    used_resources: ResourceLedger = field(default_factory=dict)
    request_resources: ResourceLedger = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "replicas": self.replicas,
            "readyReplicas": self.ready_replicas,
            "usedResource": ledger_to_quantities(self.used_resources),
            "requestResource": ledger_to_quantities(self.request_resources),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkloadResource:
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            replicas=int(data.get("replicas", 0)),
            ready_replicas=int(data.get("readyReplicas", 0)),
            used_resources=ledger_from_quantities(data.get("usedResource")),
            request_resources=ledger_from_quantities(data.get("requestResource")),
        )


# namespace UID -> group-version-kind -> owner UID -> rollup
WorkloadTable = dict[str, dict[str, dict[str, WorkloadResource]]]


@dataclass
class ClusterSnapshot:
    """Complete cluster resource state plus pending deltas for one export cycle."""

    node_deltas: dict[str, NodeDeltaRecord] = field(default_factory=dict)
    workload_deltas: dict[str, WorkloadDeltaRecord] = field(default_factory=dict)
    updated_after_rebalance: bool = False
    cluster_used_resource: ResourceLedger = field(default_factory=dict)
    cluster_request_resource: ResourceLedger = field(default_factory=dict)
    cluster_allocatable_resource: ResourceLedger = field(default_factory=dict)
    workloads: WorkloadTable = field(default_factory=dict)
    cluster_allocated_resource_rate: ResourceRate = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeDeltas": {name: delta.to_dict() for name, delta in self.node_deltas.items()},
            "workloadDeltas": {key: delta.to_dict() for key, delta in self.workload_deltas.items()},
            "updatedAfterRebalance": self.updated_after_rebalance,
            "clusterUsedResource": ledger_to_quantities(self.cluster_used_resource),
            "clusterRequestResource": ledger_to_quantities(self.cluster_request_resource),
            "clusterAllocatableResource": ledger_to_quantities(self.cluster_allocatable_resource),
            "namespacesKindsWorkloadsResources": {
                ns_uid: {
                    gvk: {owner_uid: resource.to_dict() for owner_uid, resource in owners.items()}
                    for gvk, owners in kinds.items()
                }
                for ns_uid, kinds in self.workloads.items()
            },
            "clusterAllocatedResourceRate": dict(self.cluster_allocated_resource_rate),
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), allow_nan=False).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterSnapshot:
        workloads: WorkloadTable = {
            ns_uid: {
                gvk: {owner_uid: WorkloadResource.from_dict(raw) for owner_uid, raw in owners.items()}
                for gvk, owners in kinds.items()
            }
            for ns_uid, kinds in (data.get("namespacesKindsWorkloadsResources") or {}).items()
        }
        return cls(
            node_deltas={
                name: NodeDeltaRecord.from_dict(raw) for name, raw in (data.get("nodeDeltas") or {}).items()
            },
            workload_deltas={
                key: WorkloadDeltaRecord.from_dict(raw) for key, raw in (data.get("workloadDeltas") or {}).items()
            },
            updated_after_rebalance=bool(data.get("updatedAfterRebalance", False)),
            cluster_used_resource=ledger_from_quantities(data.get("clusterUsedResource")),
            cluster_request_resource=ledger_from_quantities(data.get("clusterRequestResource")),
            cluster_allocatable_resource=ledger_from_quantities(data.get("clusterAllocatableResource")),
            workloads=workloads,
            cluster_allocated_resource_rate={
                name: float(value) for name, value in (data.get("clusterAllocatedResourceRate") or {}).items()
            },
        )

    @classmethod
    def from_json(cls, payload: bytes | str) -> ClusterSnapshot:
        return cls.from_dict(json.loads(payload))
