"""Workload Aggregator: per-owner replica and resource rollups.

Runs once per export cycle over the full pod list.  Every pod that is
Running or Pending (and not terminating) contributes its container requests
to the cluster-wide requested ledger.  Pods with an owner reference are also
rolled up under their root owner, keyed by
``(namespace UID, group-version-kind, owner UID)``.

Failure policy
--------------
* Namespace lookup failure      -- AggregationError, the export cycle aborts.
* Owner resolution failure      -- the pod is skipped and logged.
* Unsupported owner kind        -- replicas stay 0 for that owner; its
                                   resource totals still accumulate.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.cluster.owners import OwnerResolutionError, RootOwner, find_root_owner, gvk_string
from clusterdelta.cluster.pods import counts_toward_requests, is_pod_ready, owner_references, pod_key, pod_requests
from clusterdelta.ledger.resources import ResourceLedger, add_in_place, sum_usage
from clusterdelta.models.snapshot import WorkloadResource, WorkloadTable
from clusterdelta.observability.logging import get_logger
from clusterdelta.observability.metrics import owner_resolution_failures_total

if TYPE_CHECKING:
    from clusterdelta.cluster.reader import ClusterReader

_log = get_logger("aggregation.workloads")


class AggregationError(Exception):
    """Raised when workload aggregation cannot proceed for the whole cycle."""


class UnsupportedWorkloadKindError(Exception):
    """Raised when replicas are requested for a kind outside the lookup table."""


class WorkloadKind(StrEnum):
    """Owner kinds with a known replica source."""

    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"
    DAEMONSET = "DaemonSet"
    UNSUPPORTED = "Unsupported"


_KIND_TABLE: Final[dict[str, WorkloadKind]] = {
    gvk_string("apps/v1", "Deployment"): WorkloadKind.DEPLOYMENT,
    gvk_string("apps/v1", "StatefulSet"): WorkloadKind.STATEFULSET,
    gvk_string("apps/v1", "DaemonSet"): WorkloadKind.DAEMONSET,
}


def _spec_replicas(obj: dict[str, Any]) -> int:
    # The API server defaults spec.replicas to 1.
    replicas = (obj.get("spec") or {}).get("replicas")
    return 1 if replicas is None else int(replicas)


def _desired_scheduled(obj: dict[str, Any]) -> int:
    return int((obj.get("status") or {}).get("desiredNumberScheduled") or 0)


_REPLICA_SOURCES: Final[dict[WorkloadKind, Callable[[dict[str, Any]], int]]] = {
    WorkloadKind.DEPLOYMENT: _spec_replicas,
    WorkloadKind.STATEFULSET: _spec_replicas,
    WorkloadKind.DAEMONSET: _desired_scheduled,
}


def workload_kind(gvk: str) -> WorkloadKind:
    return _KIND_TABLE.get(gvk, WorkloadKind.UNSUPPORTED)


def workload_replicas(owner: RootOwner) -> int:
    """Desired replicas of *owner*.

    Raises:
        UnsupportedWorkloadKindError: if the owner kind has no replica source.
    """
    source = _REPLICA_SOURCES.get(workload_kind(owner.gvk))
    if source is None:
        raise UnsupportedWorkloadKindError(f"unsupported workload type: {owner.gvk}")
    return source(owner.obj)


def index_pod_usage(pod_metrics: Iterable[dict[str, Any]]) -> dict[tuple[str, str], ResourceLedger]:
    """Map ``(namespace, name)`` to the summed container usage of each PodMetrics item."""
    usage: dict[tuple[str, str], ResourceLedger] = {}
    for item in pod_metrics:
        containers = item.get("containers") or []
        usage[pod_key(item)] = sum_usage(c.get("usage") for c in containers)
    return usage


@dataclass
class AggregationResult:
    """Output of one aggregation pass."""

    workloads: WorkloadTable = field(default_factory=dict)
    cluster_requested: ResourceLedger = field(default_factory=dict)
    skipped_pods: int = 0


class WorkloadAggregator:
    """Builds the per-owner workload table for one export cycle.

    Instances hold per-cycle caches (namespace UIDs, owners whose replicas
    were already looked up) and must not be reused across cycles.

    Args:
        reader:    Cluster Read API.
        anonymize: Leave workload name/namespace empty in the output.
    """

    def __init__(self, reader: ClusterReader, anonymize: bool = False) -> None:
        self._reader = reader
        self._anonymize = anonymize
        self._namespace_uids: dict[str, str] = {}
        self._replicas_resolved: set[tuple[str, str, str]] = set()

    async def run(
        self,
        pods: Iterable[dict[str, Any]],
        pod_usage: dict[tuple[str, str], ResourceLedger] | None = None,
    ) -> AggregationResult:
        """Aggregate *pods* into a workload table and cluster requested ledger.

        Raises:
            AggregationError: if a pod's namespace cannot be looked up.
        """
        usage = pod_usage or {}
        result = AggregationResult()

        for pod in pods:
            requests: ResourceLedger = {}
            if counts_toward_requests(pod):
                requests = pod_requests(pod)
                add_in_place(result.cluster_requested, requests)

            owners = owner_references(pod)
            if not owners:
                continue

            namespace, name = pod_key(pod)
            ns_uid = await self._namespace_uid(namespace)

            try:
                owner = await find_root_owner(self._reader, namespace, owners[0])
            except OwnerResolutionError as exc:
                owner_resolution_failures_total.inc()
                result.skipped_pods += 1
                _log.warning("owner_resolution_failed", pod=name, namespace=namespace, error=str(exc))
                continue

            entry = self._entry(result.workloads, ns_uid, owner)
            if is_pod_ready(pod):
                entry.ready_replicas += 1

            self._populate_replicas(entry, ns_uid, owner)

            add_in_place(entry.request_resources, requests)
            pod_used = usage.get((namespace, name))
            if pod_used is not None:
                add_in_place(entry.used_resources, pod_used)

        return result

    async def _namespace_uid(self, namespace: str) -> str:
        cached = self._namespace_uids.get(namespace)
        if cached is not None:
            return cached
        try:
            ns = await self._reader.get_namespace(namespace)
        except ClusterReadError as exc:
            raise AggregationError(f"failed to get namespace {namespace}: {exc}") from exc
        uid = str((ns.get("metadata") or {}).get("uid") or "")
        self._namespace_uids[namespace] = uid
        return uid

    def _entry(self, table: WorkloadTable, ns_uid: str, owner: RootOwner) -> WorkloadResource:
        owners = table.setdefault(ns_uid, {}).setdefault(owner.gvk, {})
        entry = owners.get(owner.uid)
        if entry is None:
            entry = owners[owner.uid] = WorkloadResource()
        if not self._anonymize:
            entry.name = owner.name
            entry.namespace = owner.namespace
        return entry

    def _populate_replicas(self, entry: WorkloadResource, ns_uid: str, owner: RootOwner) -> None:
        key = (ns_uid, owner.gvk, owner.uid)
        if key in self._replicas_resolved:
            return
        self._replicas_resolved.add(key)
        try:
            entry.replicas = workload_replicas(owner)
        except UnsupportedWorkloadKindError as exc:
            _log.info("workload_replicas_unavailable", owner=owner.name, namespace=owner.namespace, error=str(exc))
