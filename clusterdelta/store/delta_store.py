"""Delta Store: pending node and workload deltas awaiting export.

One :class:`DeltaStore` is constructed per process and passed to every
observer and to the snapshot encoder.  The node and workload buffers are
guarded by independent locks.  Any caller needing both acquires the node
lock first; :meth:`DeltaStore.exclusive` is the only place that does.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from clusterdelta.models.deltas import NodeDeltaRecord, WorkloadDeltaRecord, workload_delta_key
from clusterdelta.observability.logging import get_logger
from clusterdelta.observability.metrics import pending_node_deltas, pending_workload_deltas

if TYPE_CHECKING:
    from clusterdelta.models.snapshot import ClusterSnapshot

_log = get_logger("store.delta_store")


@dataclass
class DeltaBuffers:
    """The two delta maps, exposed to the holder of both locks."""

    node_deltas: dict[str, NodeDeltaRecord] = field(default_factory=dict)
    workload_deltas: dict[str, WorkloadDeltaRecord] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.node_deltas and not self.workload_deltas

    def reset(self) -> None:
        self.node_deltas.clear()
        self.workload_deltas.clear()
        pending_node_deltas.set(0)
        pending_workload_deltas.set(0)


class DeltaStore:
    """Mutex-guarded buffers of node-keyed and workload-keyed deltas."""

    def __init__(self) -> None:
        self._node_lock = asyncio.Lock()
        self._workload_lock = asyncio.Lock()
        self._buffers = DeltaBuffers()

    async def put_node_delta(self, node_name: str, record: NodeDeltaRecord) -> None:
        """Record *record* for *node_name*, replacing any pending delta."""
        async with self._node_lock:
            self._buffers.node_deltas[node_name] = record
            pending_node_deltas.set(len(self._buffers.node_deltas))

    async def put_workload_delta(self, name: str, record: WorkloadDeltaRecord) -> None:
        """Record *record* under ``kind/namespace/name``, replacing any pending delta."""
        key = workload_delta_key(record.workload_type, record.namespace, name)
        async with self._workload_lock:
            self._buffers.workload_deltas[key] = record
            pending_workload_deltas.set(len(self._buffers.workload_deltas))

    async def merge_if_absent(self, snapshot: ClusterSnapshot | None) -> None:
        """Copy node and workload deltas from *snapshot* whose keys are not buffered.

        Existing entries always win, so replaying the same snapshot twice is
        the same as replaying it once.
        """
        if snapshot is None:
            _log.warning("merge_skipped", reason="snapshot is None")
            return
        async with self._node_lock, self._workload_lock:
            added_nodes = _merge_absent(self._buffers.node_deltas, snapshot.node_deltas)
            added_workloads = _merge_absent(self._buffers.workload_deltas, snapshot.workload_deltas)
            pending_node_deltas.set(len(self._buffers.node_deltas))
            pending_workload_deltas.set(len(self._buffers.workload_deltas))
        _log.debug("deltas_merged", node_deltas=added_nodes, workload_deltas=added_workloads)

    async def merge_workload_deltas_if_absent(self, snapshot: ClusterSnapshot | None) -> None:
        """Like :meth:`merge_if_absent` but for workload deltas only."""
        if snapshot is None:
            _log.warning("merge_skipped", reason="snapshot is None")
            return
        async with self._workload_lock:
            _merge_absent(self._buffers.workload_deltas, snapshot.workload_deltas)
            pending_workload_deltas.set(len(self._buffers.workload_deltas))

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[DeltaBuffers]:
        """Hold both locks (node first) and yield the live buffers."""
        async with self._node_lock, self._workload_lock:
            yield self._buffers

    def pending_counts(self) -> tuple[int, int]:
        """``(node deltas, workload deltas)`` currently buffered; unlocked read."""
        return len(self._buffers.node_deltas), len(self._buffers.workload_deltas)


def _merge_absent(dest: dict[str, Any], src: dict[str, Any]) -> int:
    added = 0
    for key, value in src.items():
        if key not in dest:
            dest[key] = value
            added += 1
    return added
