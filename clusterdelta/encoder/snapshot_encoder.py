"""Snapshot Encoder: one export cycle from buffered deltas to wire bytes.

A cycle moves through :class:`ExportPhase`::

    IDLE -> COLLECTING -> ENRICHING -> ENCODING -> FLUSHED
                 |             |           |
                 +-------------+-----------+--> ABORTED

Both delta-store locks are held from COLLECTING until the buffers are
cleared, so observers block for the duration of the live cluster reads.  The
buffers are only cleared once the payload bytes exist; an aborted cycle
leaves them as they were.

Failure policy
--------------
* Metrics API reads       -- degraded to an empty ledger, cycle continues.
* Node or pod list        -- ClusterReadError, cycle aborts.
* Namespace lookup        -- AggregationError, cycle aborts.
* Serialization           -- SnapshotEncodingError, cycle aborts.
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from clusterdelta.aggregation.workloads import WorkloadAggregator, index_pod_usage
from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.cluster.nodes import contains_unmanaged_nodes, internal_ips, node_name
from clusterdelta.cluster.pods import counts_toward_requests, is_pod_ready, pod_requests
from clusterdelta.ledger.resources import ResourceLedger, add_in_place, ledger_from_quantities, rate, sum_usage
from clusterdelta.models.snapshot import ClusterSnapshot
from clusterdelta.observability.logging import get_logger
from clusterdelta.observability.metrics import degraded_reads_total, export_cycle_duration_seconds

if TYPE_CHECKING:
    from clusterdelta.cluster.reader import ClusterReader
    from clusterdelta.models.deltas import NodeDeltaRecord
    from clusterdelta.store.delta_store import DeltaBuffers, DeltaStore

_log = get_logger("encoder.snapshot")


class ExportPhase(StrEnum):
    IDLE = "idle"
    COLLECTING = "collecting"
    ENRICHING = "enriching"
    ENCODING = "encoding"
    FLUSHED = "flushed"
    ABORTED = "aborted"


class SnapshotEncodingError(Exception):
    """Raised when the assembled snapshot cannot be serialized."""


@dataclass
class EncodedSnapshot:
    """Result of a flushed cycle.

    Attributes:
        payload:  JSON bytes to ship to the control plane.
        snapshot: Deep copy of the aggregate as encoded, detached from the
                  store.  Its deltas can be merged back if delivery fails.
    """

    payload: bytes
    snapshot: ClusterSnapshot


class SnapshotEncoder:
    """Runs export cycles against a shared :class:`DeltaStore`.

    Only one cycle may run at a time; scheduling cycles is the caller's job.

    Args:
        store:  Shared delta buffers.
        reader: Cluster Read API.
    """

    def __init__(self, store: DeltaStore, reader: ClusterReader) -> None:
        self._store = store
        self._reader = reader
        self.phase = ExportPhase.IDLE

    async def encode_for_sending(
        self,
        is_deltas: bool = True,
        disable_workload_uploading: bool = False,
    ) -> EncodedSnapshot | None:
        """Run one export cycle.

        Returns ``None`` when *is_deltas* is set and nothing is buffered.

        The locked window runs to completion even if the caller is cancelled.
        When that happens after the buffers were flushed, the flushed deltas
        are merged back into the store before the cancellation propagates.

        Raises:
            ClusterReadError: if nodes or pods cannot be listed.
            AggregationError: if workload aggregation cannot proceed.
            SnapshotEncodingError: if serialization fails.
        """
        task = asyncio.ensure_future(self._run_cycle(is_deltas, disable_workload_uploading))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            encoded = await self._settle(task)
            if encoded is not None:
                await self._store.merge_if_absent(encoded.snapshot)
                _log.info("export_cycle_cancelled", deltas_restored=True)
            raise

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _run_cycle(self, is_deltas: bool, disable_workload_uploading: bool) -> EncodedSnapshot | None:
        started = time.monotonic()
        async with self._store.exclusive() as buffers:
            try:
                result = await self._locked_cycle(buffers, is_deltas, disable_workload_uploading)
            except Exception as exc:
                self._enter(ExportPhase.ABORTED)
                _log.warning("export_cycle_aborted", error=str(exc), error_type=type(exc).__name__)
                raise
            finally:
                export_cycle_duration_seconds.observe(time.monotonic() - started)
        return result

    async def _locked_cycle(
        self,
        buffers: DeltaBuffers,
        is_deltas: bool,
        disable_workload_uploading: bool,
    ) -> EncodedSnapshot | None:
        self._enter(ExportPhase.COLLECTING)
        nodes = await self._reader.list_nodes()
        if is_deltas and buffers.is_empty():
            self._enter(ExportPhase.IDLE)
            return None

        self._enter(ExportPhase.ENRICHING)
        snapshot = await self._enrich(buffers, nodes, disable_workload_uploading)

        self._enter(ExportPhase.ENCODING)
        try:
            payload = snapshot.to_json()
        except (TypeError, ValueError) as exc:
            raise SnapshotEncodingError(f"failed to encode cluster snapshot: {exc}") from exc

        detached = copy.deepcopy(snapshot)
        buffers.reset()
        self._enter(ExportPhase.FLUSHED)
        _log.info(
            "export_cycle_flushed",
            node_deltas=len(detached.node_deltas),
            workload_deltas=len(detached.workload_deltas),
            bytes=len(payload),
            is_deltas=is_deltas,
        )
        return EncodedSnapshot(payload=payload, snapshot=detached)

    async def _enrich(
        self,
        buffers: DeltaBuffers,
        nodes: list[dict[str, Any]],
        disable_workload_uploading: bool,
    ) -> ClusterSnapshot:
        fully_managed = not await contains_unmanaged_nodes(self._reader, nodes)

        allocatable: ResourceLedger = {}
        for node in nodes:
            add_in_place(allocatable, ledger_from_quantities((node.get("status") or {}).get("allocatable")))

        used = await self._node_usage(None)

        pods = await self._reader.list_pods()
        pod_usage = await self._pod_usage()
        aggregation = await WorkloadAggregator(self._reader, anonymize=disable_workload_uploading).run(
            pods, pod_usage
        )

        live_nodes = {node_name(node): node for node in nodes}
        node_deltas: dict[str, NodeDeltaRecord] = {}
        for name, record in buffers.node_deltas.items():
            node = live_nodes.get(name)
            if node is None:
                # Deleted nodes ship their last-known values.
                node_deltas[name] = record
                continue
            try:
                node_deltas[name] = await self._refresh_node_delta(record, node)
            except ClusterReadError as exc:
                _log.error("node_delta_refresh_failed", node=name, error=str(exc))
                node_deltas[name] = record

        return ClusterSnapshot(
            node_deltas=node_deltas,
            workload_deltas=dict(buffers.workload_deltas),
            updated_after_rebalance=fully_managed,
            cluster_used_resource=used,
            cluster_request_resource=aggregation.cluster_requested,
            cluster_allocatable_resource=allocatable,
            workloads=aggregation.workloads,
            cluster_allocated_resource_rate=rate(allocatable, aggregation.cluster_requested),
        )

    async def _refresh_node_delta(self, record: NodeDeltaRecord, node: dict[str, Any]) -> NodeDeltaRecord:
        name = node_name(node)
        used = await self._node_usage(name)
        pods = await self._reader.list_pods(node_name=name)

        requested: ResourceLedger = {}
        ready = not_ready = 0
        for pod in pods:
            if counts_toward_requests(pod):
                add_in_place(requested, pod_requests(pod))
            if is_pod_ready(pod):
                ready += 1
            else:
                not_ready += 1

        status = node.get("status") or {}
        return dataclasses.replace(
            record,
            ip_addresses=internal_ips(node),
            used_resources=used,
            request_resources=requested,
            allocatable_resources=ledger_from_quantities(status.get("allocatable")),
            provisioned_resources=ledger_from_quantities(status.get("capacity")),
            ready_pod_number=ready,
            not_ready_pod_number=not_ready,
        )

    # ------------------------------------------------------------------
    # Degradable reads
    # ------------------------------------------------------------------

    async def _node_usage(self, name: str | None) -> ResourceLedger:
        try:
            items = await self._reader.list_node_metrics(node_name=name)
        except ClusterReadError as exc:
            degraded_reads_total.labels(source="node_metrics").inc()
            _log.warning("node_metrics_unavailable", node=name, error=str(exc))
            return {}
        return sum_usage(item.get("usage") for item in items)

    async def _pod_usage(self) -> dict[tuple[str, str], ResourceLedger]:
        try:
            items = await self._reader.list_pod_metrics()
        except ClusterReadError as exc:
            degraded_reads_total.labels(source="pod_metrics").inc()
            _log.warning("pod_metrics_unavailable", error=str(exc))
            return {}
        return index_pod_usage(items)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, phase: ExportPhase) -> None:
        _log.debug("export_phase", previous=self.phase.value, phase=phase.value)
        self.phase = phase

    @staticmethod
    async def _settle(task: asyncio.Future[EncodedSnapshot | None]) -> EncodedSnapshot | None:
        try:
            return await task
        except Exception as exc:
            _log.warning("export_cycle_failed_after_cancel", error=str(exc))
            return None
