"""Prometheus metrics for the export pipeline.

All collectors live on the default registry so that a single
``prometheus_client.start_http_server`` call exposes them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

export_cycles_total = Counter(
    "clusterdelta_export_cycles_total",
    "Export cycles by outcome (sent, nothing_to_send, aborted, send_failed).",
    ["outcome"],
)

export_cycle_duration_seconds = Histogram(
    "clusterdelta_export_cycle_duration_seconds",
    "Wall time of the locked collect/enrich/encode window.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

pending_node_deltas = Gauge(
    "clusterdelta_pending_node_deltas",
    "Node deltas buffered and awaiting export.",
)

pending_workload_deltas = Gauge(
    "clusterdelta_pending_workload_deltas",
    "Workload deltas buffered and awaiting export.",
)

owner_resolution_failures_total = Counter(
    "clusterdelta_owner_resolution_failures_total",
    "Pods skipped by the workload aggregator because their root owner could not be resolved.",
)

degraded_reads_total = Counter(
    "clusterdelta_degraded_reads_total",
    "Cluster reads that failed and were degraded to an empty result.",
    ["source"],
)

transport_requests_total = Counter(
    "clusterdelta_transport_requests_total",
    "Control plane requests by endpoint and outcome.",
    ["endpoint", "outcome"],
)

transport_retries_total = Counter(
    "clusterdelta_transport_retries_total",
    "Retried control plane request attempts by endpoint.",
    ["endpoint"],
)
