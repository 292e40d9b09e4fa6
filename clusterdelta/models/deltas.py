"""Delta records buffered between export cycles, and their enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from clusterdelta.ledger.resources import ResourceLedger, ledger_from_quantities, ledger_to_quantities


class EventType(StrEnum):
    """Lifecycle transition that produced a delta."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class WorkloadType(StrEnum):
    """Workload kinds tracked as deltas."""

    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"


class CapacityType(StrEnum):
    """Purchase option of a compute node."""

    SPOT = "SPOT"
    ON_DEMAND = "ON_DEMAND"


class Rebalanced(StrEnum):
    """Tri-state "node was placed by the rebalancer" flag.

    Serialised as ``null`` / ``true`` / ``false``.
    """

    UNKNOWN = "unknown"
    TRUE = "true"
    FALSE = "false"

    @classmethod
    def from_bool(cls, value: bool | None) -> Rebalanced:
        if value is None:
            return cls.UNKNOWN
        return cls.TRUE if value else cls.FALSE

    def to_wire(self) -> bool | None:
        if self is Rebalanced.UNKNOWN:
            return None
        return self is Rebalanced.TRUE


def workload_delta_key(workload_type: str, namespace: str, name: str) -> str:
    """Buffer key for a workload delta: ``kind/namespace/name`` with a lower-cased kind."""
    return f"{workload_type.lower()}/{namespace}/{name}"


def format_time(value: datetime | None) -> str | None:
    """RFC 3339 rendering used on the wire (``Z`` for UTC)."""
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class NodeDeltaRecord:
    """One pending node change event.

    Created by an observer; the resource, IP and pod-count fields are
    refreshed in place by the snapshot encoder while the node still exists.
    """

    id: str
    event: EventType
    instance_type: str = ""
    capacity_type: CapacityType = CapacityType.ON_DEMAND
    ip_addresses: list[str] = field(default_factory=list)
    zone: str = ""
    aws_zone_id: str = ""
    rebalanced: Rebalanced = Rebalanced.UNKNOWN
    status: str = ""
    message: str = ""
    status_last_transition_time: datetime | None = None

    used_resources: ResourceLedger = field(default_factory=dict)
    request_resources: ResourceLedger = field(default_factory=dict)
    allocatable_resources: ResourceLedger = field(default_factory=dict)
    provisioned_resources: ResourceLedger = field(default_factory=dict)

    ready_pod_number: int = 0
    not_ready_pod_number: int = 0

    owner: str = ""
    creation_timestamp: int = 0
    deletion_timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event.value,
            "instanceType": self.instance_type,
            "capacityType": self.capacity_type.value,
            "ipAddress": list(self.ip_addresses),
            "zone": self.zone,
            "AWSZoneID": self.aws_zone_id,
            "rebalanced": self.rebalanced.to_wire(),
            "status": self.status,
            "message": self.message,
            "statusLastTransitionTime": format_time(self.status_last_transition_time),
            "usedResources": ledger_to_quantities(self.used_resources),
            "requestResources": ledger_to_quantities(self.request_resources),
            "allocatableResources": ledger_to_quantities(self.allocatable_resources),
            "provisionedResources": ledger_to_quantities(self.provisioned_resources),
            "readyPodNumber": self.ready_pod_number,
            "notReadyPodNumber": self.not_ready_pod_number,
            "owner": self.owner,
            "creationTimestamp": self.creation_timestamp,
            "deletionTimestamp": self.deletion_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeDeltaRecord:
        return cls(
            id=data.get("id", ""),
            event=EventType(data["event"]),
            instance_type=data.get("instanceType", ""),
            capacity_type=CapacityType(data.get("capacityType") or CapacityType.ON_DEMAND),
            ip_addresses=list(data.get("ipAddress") or []),
            zone=data.get("zone", ""),
            aws_zone_id=data.get("AWSZoneID", ""),
            rebalanced=Rebalanced.from_bool(data.get("rebalanced")),
            status=data.get("status", ""),
            message=data.get("message", ""),
            status_last_transition_time=parse_time(data.get("statusLastTransitionTime")),
            used_resources=ledger_from_quantities(data.get("usedResources")),
            request_resources=ledger_from_quantities(data.get("requestResources")),
            allocatable_resources=ledger_from_quantities(data.get("allocatableResources")),
            provisioned_resources=ledger_from_quantities(data.get("provisionedResources")),
            ready_pod_number=int(data.get("readyPodNumber", 0)),
            not_ready_pod_number=int(data.get("notReadyPodNumber", 0)),
            owner=data.get("owner", ""),
            creation_timestamp=int(data.get("creationTimestamp", 0)),
            deletion_timestamp=int(data.get("deletionTimestamp", 0)),
        )


@dataclass
class WorkloadDeltaRecord:
    """One pending workload scaling event."""

    event: EventType
    workload_type: WorkloadType
    namespace: str
    replicas: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.value,
            "workloadType": self.workload_type.value,
            "namespace": self.namespace,
            "replicas": self.replicas,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkloadDeltaRecord:
        return cls(
            event=EventType(data["event"]),
            workload_type=WorkloadType(data["workloadType"]),
            namespace=data.get("namespace", ""),
            replicas=int(data.get("replicas", 0)),
        )
