"""Unit tests for wire models."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from clusterdelta.models.controlplane import ClusterRebalanceState, ClusterRebalanceStatus, ResponseEnvelope
from clusterdelta.models.deltas import (
    CapacityType,
    EventType,
    NodeDeltaRecord,
    Rebalanced,
    WorkloadDeltaRecord,
    WorkloadType,
    workload_delta_key,
)
from clusterdelta.models.snapshot import ClusterSnapshot, WorkloadResource


class TestRebalanced:
    @pytest.mark.parametrize(
        ("value", "wire"),
        [(Rebalanced.UNKNOWN, None), (Rebalanced.TRUE, True), (Rebalanced.FALSE, False)],
    )
    def test_wire_values(self, value: Rebalanced, wire: bool | None) -> None:
        assert value.to_wire() is wire
        assert Rebalanced.from_bool(wire) is value


class TestNodeDeltaRecord:
    def test_wire_shape(self) -> None:
        record = NodeDeltaRecord(
            id="i-a",
            event=EventType.ADD,
            capacity_type=CapacityType.SPOT,
            aws_zone_id="use1-az1",
            status_last_transition_time=datetime(2024, 1, 15, 10, 1, tzinfo=UTC),
            request_resources={"cpu": 750},
        )

        data = record.to_dict()

        assert data["capacityType"] == "SPOT"
        assert data["AWSZoneID"] == "use1-az1"
        assert data["rebalanced"] is None
        assert data["statusLastTransitionTime"] == "2024-01-15T10:01:00Z"
        assert data["requestResources"] == {"cpu": "750m"}
        assert NodeDeltaRecord.from_dict(data) == record


class TestWorkloadDeltaKey:
    def test_kind_is_lowercased(self) -> None:
        assert workload_delta_key("StatefulSet", "db", "pg") == "statefulset/db/pg"


class TestClusterSnapshot:
    def test_json_round_trip(self) -> None:
        snapshot = ClusterSnapshot(
            node_deltas={"node-a": NodeDeltaRecord(id="i-a", event=EventType.DELETE)},
            workload_deltas={
                "deployment/shop/web": WorkloadDeltaRecord(EventType.UPDATE, WorkloadType.DEPLOYMENT, "shop", 3)
            },
            updated_after_rebalance=True,
            cluster_request_resource={"cpu": 1000},
            cluster_allocatable_resource={"cpu": 4000},
            workloads={"ns-uid": {"apps/v1, Kind=Deployment": {"uid-1": WorkloadResource(name="web", replicas=3)}}},
            cluster_allocated_resource_rate={"cpu": 0.25},
        )

        payload = snapshot.to_json()

        assert json.loads(payload)["clusterAllocatedResourceRate"] == {"cpu": 0.25}
        assert ClusterSnapshot.from_json(payload) == snapshot


class TestResponseEnvelope:
    @pytest.mark.parametrize(("code", "ok"), [(0, True), (200, True), (500, False), (40001, False)])
    def test_ok_codes(self, code: int, ok: bool) -> None:
        assert ResponseEnvelope.from_dict({"code": code}).ok is ok

    @pytest.mark.parametrize("body", [{}, {"code": "0"}, {"code": True}])
    def test_code_must_be_integer(self, body: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            ResponseEnvelope.from_dict(body)


class TestRebalanceStatus:
    def test_empty_state(self) -> None:
        status = ClusterRebalanceStatus.from_dict({"state": "", "message": ""})
        assert status.state is None
        assert status.to_dict()["state"] == ""

    def test_round_trip(self) -> None:
        status = ClusterRebalanceStatus(state=ClusterRebalanceState.SUCCESS, message="done")
        assert ClusterRebalanceStatus.from_dict(status.to_dict()) == status
