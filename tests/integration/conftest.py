"""Shared fixtures for clusterdelta integration tests.

Provides a small realistic cluster behind the in-memory reader and a fake
control plane behind httpx.MockTransport, so integration tests can run the
full store -> encoder -> exporter -> transport pipeline without touching a
real Kubernetes cluster or network.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from clusterdelta.encoder.snapshot_encoder import SnapshotEncoder
from clusterdelta.exporter import Exporter
from clusterdelta.models.config import ExportConfig
from clusterdelta.models.snapshot import ClusterSnapshot
from clusterdelta.store.delta_store import DeltaStore
from clusterdelta.transport.client import ControlPlaneClient
from tests.factories import (
    FakeClusterReader,
    deployment_with_replica_set,
    make_node,
    make_node_metrics,
    make_pod,
    make_pod_metrics,
    make_workload,
    owner_ref,
)

CLUSTER_ID = "c-integration"

# ---------------------------------------------------------------------------
# Fake control plane
# ---------------------------------------------------------------------------


class FakeControlPlane:
    """Accepts snapshots on the deltas endpoint and records them.

    ``fail_next`` responses are answered with ``fail_status`` before the
    control plane starts accepting again.
    """

    def __init__(self) -> None:
        self.snapshots: list[ClusterSnapshot] = []
        self.requests: list[httpx.Request] = []
        self.fail_next = 0
        self.fail_status = 503

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next > 0:
            self.fail_next -= 1
            return httpx.Response(self.fail_status, json={"code": self.fail_status, "message": "unavailable"})
        if request.url.path == f"/api/v1/clusters/{CLUSTER_ID}/deltas":
            self.snapshots.append(ClusterSnapshot.from_json(request.content))
            return httpx.Response(200, json={"code": 0, "message": "ok"})
        if request.url.path == f"/api/v1/clusters/{CLUSTER_ID}/heartbeat":
            return httpx.Response(200, json={"code": 200, "message": "ok"})
        return httpx.Response(404, json={"code": 404, "message": f"no route {request.url.path}"})

    def last_payload(self) -> dict[str, Any]:
        deltas = [r for r in self.requests if r.url.path.endswith("/deltas")]
        return json.loads(deltas[-1].content)  # type: ignore[no-any-return]


# ---------------------------------------------------------------------------
# Cluster
# ---------------------------------------------------------------------------


def build_cluster() -> FakeClusterReader:
    """Two spot nodes running a Deployment, a DaemonSet and one bare pod."""
    deployment, replica_set, web_ref = deployment_with_replica_set("web", namespace="shop", replicas=3)
    daemon_set = make_workload("DaemonSet", "node-agent", namespace="kube-system", desired_scheduled=2)
    agent_ref = owner_ref("apps/v1", "DaemonSet", "node-agent")

    pods = [
        make_pod("web-1", namespace="shop", node="node-a", requests={"cpu": "500m", "memory": "512Mi"}, owner=web_ref),
        make_pod("web-2", namespace="shop", node="node-b", requests={"cpu": "500m", "memory": "512Mi"}, owner=web_ref),
        make_pod("web-3", namespace="shop", node="node-b", requests={"cpu": "500m"}, owner=web_ref, ready=False),
        make_pod("agent-a", namespace="kube-system", node="node-a", requests={"cpu": "100m"}, owner=agent_ref),
        make_pod("agent-b", namespace="kube-system", node="node-b", requests={"cpu": "100m"}, owner=agent_ref),
        make_pod("debug", namespace="default", node="node-a", requests={"cpu": "200m"}),
        make_pod("done", namespace="default", node="node-a", phase="Succeeded", ready=False),
    ]
    return FakeClusterReader(
        nodes=[
            make_node("node-a", provider_id="aws:///us-east-1a/i-0aaa", internal_ip="10.0.0.1"),
            make_node("node-b", provider_id="aws:///us-east-1a/i-0bbb", internal_ip="10.0.0.2"),
        ],
        pods=pods,
        objects=[deployment, replica_set, daemon_set],
        node_metrics=[make_node_metrics("node-a", "900m", "2Gi"), make_node_metrics("node-b", "1100m", "3Gi")],
        pod_metrics=[
            make_pod_metrics("web-1", "300m", "256Mi", namespace="shop"),
            make_pod_metrics("web-2", "200m", "256Mi", namespace="shop"),
        ],
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def cluster() -> FakeClusterReader:
    return build_cluster()


@pytest.fixture
def store() -> DeltaStore:
    return DeltaStore()


@pytest.fixture
def client(control_plane: FakeControlPlane) -> ControlPlaneClient:
    return ControlPlaneClient(
        "https://cp.example.test",
        api_key="integration-key",
        cluster_id=CLUSTER_ID,
        max_attempts=3,
        retry_backoff=0,
        transport=httpx.MockTransport(control_plane),
    )


@pytest.fixture
def exporter(store: DeltaStore, cluster: FakeClusterReader, client: ControlPlaneClient) -> Exporter:
    return Exporter(store, SnapshotEncoder(store, cluster), client, ExportConfig(interval_seconds=10))
