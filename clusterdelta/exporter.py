"""Export orchestration: encode a cycle, ship it, restore deltas on failure.

The snapshot encoder clears the delta store as soon as a payload exists.  If
delivery then fails (or the exporting task is cancelled mid-send), the
flushed deltas are merged back so the next cycle carries them again.  Events
recorded since the flush win over the restored copies.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING

from clusterdelta.aggregation.workloads import AggregationError
from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.encoder.snapshot_encoder import SnapshotEncodingError
from clusterdelta.observability.logging import get_logger
from clusterdelta.observability.metrics import export_cycles_total
from clusterdelta.transport.errors import ControlPlaneError

if TYPE_CHECKING:
    from clusterdelta.encoder.snapshot_encoder import SnapshotEncoder
    from clusterdelta.models.config import ExportConfig
    from clusterdelta.store.delta_store import DeltaStore
    from clusterdelta.transport.client import ControlPlaneClient

_log = get_logger("exporter")

# Failures that abort one cycle without stopping the periodic loop.
CYCLE_ERRORS = (ClusterReadError, AggregationError, SnapshotEncodingError, ControlPlaneError)


class ExportOutcome(StrEnum):
    SENT = "sent"
    NOTHING_TO_SEND = "nothing_to_send"


class Exporter:
    """Drives export cycles from the encoder to the control plane.

    Args:
        store:   The delta store the encoder flushes; used to restore deltas.
        encoder: Snapshot encoder bound to the same store.
        client:  Control plane client.
        config:  Export interval and payload options.
    """

    def __init__(
        self,
        store: DeltaStore,
        encoder: SnapshotEncoder,
        client: ControlPlaneClient,
        config: ExportConfig,
    ) -> None:
        self._store = store
        self._encoder = encoder
        self._client = client
        self._config = config
        self._cycle = 0

    async def export_once(self, is_deltas: bool = True) -> ExportOutcome:
        """Encode one cycle and send it.

        Raises:
            ClusterReadError, AggregationError, SnapshotEncodingError: the
                cycle aborted before anything was flushed.
            ControlPlaneError: delivery failed; the deltas were restored.
                Any other error raised while sending also restores them.
        """
        try:
            encoded = await self._encoder.encode_for_sending(
                is_deltas=is_deltas,
                disable_workload_uploading=self._config.disable_workload_uploading,
            )
        except (ClusterReadError, AggregationError, SnapshotEncodingError):
            export_cycles_total.labels(outcome="aborted").inc()
            raise

        if encoded is None:
            export_cycles_total.labels(outcome="nothing_to_send").inc()
            _log.debug("export_nothing_to_send")
            return ExportOutcome.NOTHING_TO_SEND

        try:
            await self._client.send_cluster_deltas(encoded.payload)
        except (Exception, asyncio.CancelledError) as exc:
            # The encoder already cleared the buffers; any failed send restores them.
            await self._store.merge_if_absent(encoded.snapshot)
            export_cycles_total.labels(outcome="send_failed").inc()
            _log.warning(
                "export_send_failed",
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
                restored_node_deltas=len(encoded.snapshot.node_deltas),
                restored_workload_deltas=len(encoded.snapshot.workload_deltas),
            )
            raise

        export_cycles_total.labels(outcome="sent").inc()
        _log.info(
            "export_sent",
            is_deltas=is_deltas,
            node_deltas=len(encoded.snapshot.node_deltas),
            workload_deltas=len(encoded.snapshot.workload_deltas),
        )
        return ExportOutcome.SENT

    def next_is_deltas(self) -> bool:
        """Whether the next periodic cycle is delta-only.

        The first cycle and every ``full_snapshot_every``-th cycle after it
        ship a full snapshot.
        """
        every = max(self._config.full_snapshot_every, 1)
        return self._cycle % every != 0

    async def run(self) -> None:
        """Export every ``interval_seconds`` until cancelled."""
        while True:
            is_deltas = self.next_is_deltas()
            try:
                await self.export_once(is_deltas)
            except CYCLE_ERRORS as exc:
                _log.error("export_cycle_failed", is_deltas=is_deltas, error=str(exc))
            except Exception as exc:
                _log.error(
                    "export_cycle_failed",
                    is_deltas=is_deltas,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            self._cycle += 1
            await asyncio.sleep(self._config.interval_seconds)
