"""Node inspection helpers: addressing, placement labels, rebalance eligibility."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Final

from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.cluster.pods import should_reschedule
from clusterdelta.ledger.resources import ledger_from_quantities
from clusterdelta.models.deltas import CapacityType, EventType, NodeDeltaRecord, Rebalanced
from clusterdelta.observability.logging import get_logger

if TYPE_CHECKING:
    from clusterdelta.cluster.reader import ClusterReader

_log = get_logger("cluster.nodes")

CLOUD_PROVIDER_AWS: Final[str] = "aws"
CLOUD_PROVIDER_ALIBABACLOUD: Final[str] = "alibabacloud"
ALLOWED_CLOUD_PROVIDERS: Final[frozenset[str]] = frozenset({CLOUD_PROVIDER_AWS, CLOUD_PROVIDER_ALIBABACLOUD})

NODEPOOL_LABEL: Final[str] = "karpenter.sh/nodepool"
CAPACITY_TYPE_LABEL: Final[str] = "karpenter.sh/capacity-type"
DO_NOT_DISRUPT_KEY: Final[str] = "karpenter.sh/do-not-disrupt"
AWS_CAPACITY_TYPE_LABEL: Final[str] = "eks.amazonaws.com/capacityType"
AWS_ZONE_ID_LABEL: Final[str] = "topology.k8s.aws/zone-id"
ALIBABA_SPOT_STRATEGY_LABEL: Final[str] = "node.alibabacloud.com/spot-strategy"
INSTANCE_TYPE_LABEL: Final[str] = "node.kubernetes.io/instance-type"
ZONE_LABEL: Final[str] = "topology.kubernetes.io/zone"
MANAGED_NODE_LABEL: Final[str] = "node.clusterdelta.io/managed"

_ALIBABA_SPOT_STRATEGIES: Final[frozenset[str]] = frozenset({"SpotWithPriceLimit", "SpotAsPriceGo"})


def _labels(node: dict[str, Any]) -> dict[str, str]:
    return (node.get("metadata") or {}).get("labels") or {}


def _annotations(node: dict[str, Any]) -> dict[str, str]:
    return (node.get("metadata") or {}).get("annotations") or {}


def node_name(node: dict[str, Any]) -> str:
    return str((node.get("metadata") or {}).get("name") or "")


def internal_ips(node: dict[str, Any]) -> list[str]:
    addresses = (node.get("status") or {}).get("addresses") or []
    return [addr["address"] for addr in addresses if addr.get("type") == "InternalIP" and addr.get("address")]


def instance_type(node: dict[str, Any]) -> str:
    return _labels(node).get(INSTANCE_TYPE_LABEL, "")


def zone(node: dict[str, Any]) -> str:
    return _labels(node).get(ZONE_LABEL, "")


def aws_zone_id(node: dict[str, Any]) -> str:
    return _labels(node).get(AWS_ZONE_ID_LABEL, "")


def is_rebalanced(node: dict[str, Any]) -> Rebalanced:
    """Whether the node was placed by the rebalancer; UNKNOWN without labels."""
    labels = (node.get("metadata") or {}).get("labels")
    if labels is None:
        return Rebalanced.UNKNOWN
    return Rebalanced.from_bool(labels.get(MANAGED_NODE_LABEL) == "true")


def capacity_type(node: dict[str, Any], cloud_provider: str) -> CapacityType:
    """Classify *node* as spot or on-demand.

    Raises:
        ValueError: if *cloud_provider* is not supported.
    """
    if cloud_provider not in ALLOWED_CLOUD_PROVIDERS:
        raise ValueError(f"provider {cloud_provider} is not supported")

    labels = _labels(node)
    value = labels.get(CAPACITY_TYPE_LABEL, "")
    if not value:
        if cloud_provider == CLOUD_PROVIDER_AWS:
            value = labels.get(AWS_CAPACITY_TYPE_LABEL, "")
        elif labels.get(ALIBABA_SPOT_STRATEGY_LABEL, "") in _ALIBABA_SPOT_STRATEGIES:
            value = "spot"

    normalized = (value or "on-demand").replace("-", "_").upper()
    try:
        return CapacityType(normalized)
    except ValueError:
        _log.warning("unknown_capacity_type", node=node_name(node), value=value)
        return CapacityType.ON_DEMAND


async def is_rebalance_able(reader: ClusterReader, node: dict[str, Any]) -> bool:
    """False when the node, or any pod that would be moved off it, opts out of disruption.

    Raises:
        ClusterReadError: if the node's pods cannot be listed.
    """
    if _annotations(node).get(DO_NOT_DISRUPT_KEY) == "true":
        return False
    if _labels(node).get(DO_NOT_DISRUPT_KEY) == "true":
        return False

    for pod in await reader.list_pods(node_name=node_name(node)):
        if not should_reschedule(pod):
            continue
        if ((pod.get("metadata") or {}).get("annotations") or {}).get(DO_NOT_DISRUPT_KEY) == "true":
            return False
    return True


async def contains_unmanaged_nodes(reader: ClusterReader, nodes: list[dict[str, Any]]) -> bool:
    """True if any node is outside the autoscaler's management.

    A node with no labels at all is unmanaged.  A node that is eligible for
    rebalancing but carries no nodepool label is unmanaged.  Nodes that are
    not eligible, or whose eligibility cannot be determined, are skipped.
    """
    for node in nodes:
        if (node.get("metadata") or {}).get("labels") is None:
            return True
        try:
            eligible = await is_rebalance_able(reader, node)
        except ClusterReadError as exc:
            _log.warning("rebalance_check_failed", node=node_name(node), error=str(exc))
            continue
        if not eligible:
            continue
        if NODEPOOL_LABEL not in _labels(node):
            return True
    return False


def _unix(value: str | None) -> int:
    if not value:
        return 0
    return int(datetime.fromisoformat(value).timestamp())


def build_node_delta(node: dict[str, Any], event: EventType, cloud_provider: str) -> NodeDeltaRecord:
    """Build a node delta from a live Node object, for observers recording an event.

    Used and requested resources and pod counts are left empty; the snapshot
    encoder fills them in at export time.
    """
    metadata = node.get("metadata") or {}
    status = node.get("status") or {}

    ready = next((c for c in status.get("conditions") or [] if c.get("type") == "Ready"), {})
    transition = ready.get("lastTransitionTime")

    return NodeDeltaRecord(
        id=str((node.get("spec") or {}).get("providerID") or metadata.get("name") or ""),
        event=event,
        instance_type=instance_type(node),
        capacity_type=capacity_type(node, cloud_provider),
        ip_addresses=internal_ips(node),
        zone=zone(node),
        aws_zone_id=aws_zone_id(node),
        rebalanced=is_rebalanced(node),
        status=str(ready.get("status") or ""),
        message=str(ready.get("message") or ""),
        status_last_transition_time=datetime.fromisoformat(transition) if transition else None,
        allocatable_resources=ledger_from_quantities(status.get("allocatable")),
        provisioned_resources=ledger_from_quantities(status.get("capacity")),
        owner=_labels(node).get(NODEPOOL_LABEL, ""),
        creation_timestamp=_unix(metadata.get("creationTimestamp")),
        deletion_timestamp=_unix(metadata.get("deletionTimestamp")),
    )
