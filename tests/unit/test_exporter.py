"""Unit tests for export orchestration and delta restoration."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from prometheus_client import REGISTRY

from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.encoder.snapshot_encoder import SnapshotEncoder
from clusterdelta.exporter import Exporter, ExportOutcome
from clusterdelta.models.config import ExportConfig
from clusterdelta.models.deltas import EventType, NodeDeltaRecord, WorkloadDeltaRecord, WorkloadType
from clusterdelta.store.delta_store import DeltaStore
from clusterdelta.transport.client import ControlPlaneClient
from clusterdelta.transport.errors import ControlPlaneError, RetriesExhaustedError
from tests.factories import FakeClusterReader, make_node

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _outcomes(outcome: str) -> float:
    return REGISTRY.get_sample_value("clusterdelta_export_cycles_total", {"outcome": outcome}) or 0.0


def _build(
    transport: httpx.MockTransport,
    reader: FakeClusterReader | None = None,
    config: ExportConfig | None = None,
) -> tuple[DeltaStore, Exporter]:
    store = DeltaStore()
    reader = reader or FakeClusterReader(nodes=[make_node()])
    client = ControlPlaneClient(
        "https://cp.example.test",
        api_key="secret",
        cluster_id="c-123",
        max_attempts=2,
        retry_backoff=0,
        transport=transport,
    )
    return store, Exporter(store, SnapshotEncoder(store, reader), client, config or ExportConfig())


def _accepting(sent: list[bytes]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request.content)
        return httpx.Response(200, json={"code": 0, "message": "ok"})

    return httpx.MockTransport(handler)


def _failing() -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(500, text="internal error"))


# ---------------------------------------------------------------------------
# export_once
# ---------------------------------------------------------------------------


class TestExportOnce:
    async def test_sent_clears_store(self) -> None:
        sent: list[bytes] = []
        store, exporter = _build(_accepting(sent))
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))
        before = _outcomes("sent")

        assert await exporter.export_once() is ExportOutcome.SENT

        assert len(sent) == 1
        assert store.pending_counts() == (0, 0)
        assert _outcomes("sent") == before + 1

    async def test_nothing_to_send(self) -> None:
        sent: list[bytes] = []
        _, exporter = _build(_accepting(sent))

        assert await exporter.export_once() is ExportOutcome.NOTHING_TO_SEND
        assert sent == []

    async def test_send_failure_restores_deltas(self) -> None:
        store, exporter = _build(_failing())
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))
        before = _outcomes("send_failed")

        with pytest.raises(RetriesExhaustedError):
            await exporter.export_once()

        assert store.pending_counts() == (1, 0)
        assert _outcomes("send_failed") == before + 1

    async def test_undecodable_response_restores_deltas(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=httpx.ByteStream(b"not-gzip"), headers={"Content-Encoding": "gzip"})

        store, exporter = _build(httpx.MockTransport(handler))
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))

        with pytest.raises(ControlPlaneError):
            await exporter.export_once()

        assert store.pending_counts() == (1, 0)

    async def test_unexpected_send_error_restores_deltas(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("handler blew up")

        store, exporter = _build(httpx.MockTransport(handler))
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))
        await store.put_workload_delta(
            "web",
            WorkloadDeltaRecord(EventType.UPDATE, WorkloadType.DEPLOYMENT, "shop", replicas=2),
        )

        with pytest.raises(RuntimeError):
            await exporter.export_once()

        assert store.pending_counts() == (1, 1)

    async def test_newer_delta_wins_over_restored_copy(self) -> None:
        stores: list[DeltaStore] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            # An observer records a newer event while the payload is in flight.
            await stores[0].put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.DELETE))
            return httpx.Response(500, text="internal error")

        store, exporter = _build(httpx.MockTransport(handler))
        stores.append(store)
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))

        with pytest.raises(RetriesExhaustedError):
            await exporter.export_once()

        async with store.exclusive() as buffers:
            assert buffers.node_deltas["node-a"].event is EventType.DELETE

    async def test_encoder_failure_is_counted_as_aborted(self) -> None:
        reader = FakeClusterReader()
        reader.failures["list_nodes"] = "forbidden"
        _, exporter = _build(_accepting([]), reader=reader)
        before = _outcomes("aborted")

        with pytest.raises(ClusterReadError):
            await exporter.export_once(is_deltas=False)
        assert _outcomes("aborted") == before + 1

    async def test_cancelled_send_restores_deltas(self) -> None:
        entered = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            entered.set()
            await asyncio.Event().wait()
            return httpx.Response(200, json={"code": 0})

        store, exporter = _build(httpx.MockTransport(handler))
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))

        task = asyncio.create_task(exporter.export_once())
        await entered.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.pending_counts() == (1, 0)


# ---------------------------------------------------------------------------
# Periodic loop
# ---------------------------------------------------------------------------


class TestRun:
    def test_first_cycle_is_full_snapshot(self) -> None:
        _, exporter = _build(_accepting([]), config=ExportConfig(full_snapshot_every=3))
        assert exporter.next_is_deltas() is False

    async def test_full_snapshot_every_nth_cycle(self) -> None:
        sent: list[bytes] = []
        reader = FakeClusterReader(nodes=[make_node()])
        _, exporter = _build(
            _accepting(sent),
            reader=reader,
            config=ExportConfig(interval_seconds=0, full_snapshot_every=2),
        )

        task = asyncio.create_task(exporter.run())
        try:
            async with asyncio.timeout(5):
                while len(sent) < 2:
                    await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        # Cycle 0 and cycle 2 ship full snapshots; cycle 1 had nothing buffered.
        assert reader.count("list_nodes") >= 3

    async def test_cycle_errors_do_not_stop_the_loop(self) -> None:
        reader = FakeClusterReader()
        reader.failures["list_nodes"] = "forbidden"
        _, exporter = _build(_accepting([]), reader=reader, config=ExportConfig(interval_seconds=0))

        task = asyncio.create_task(exporter.run())
        try:
            async with asyncio.timeout(5):
                while reader.count("list_nodes") < 3:
                    await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    async def test_unexpected_failures_do_not_stop_the_loop(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            raise RuntimeError("handler blew up")

        store, exporter = _build(httpx.MockTransport(handler), config=ExportConfig(interval_seconds=0))
        await store.put_node_delta("node-a", NodeDeltaRecord(id="i-a", event=EventType.ADD))

        task = asyncio.create_task(exporter.run())
        try:
            async with asyncio.timeout(5):
                while len(requests) < 3:
                    await asyncio.sleep(0.01)
            assert not task.done()
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert store.pending_counts() == (1, 0)
