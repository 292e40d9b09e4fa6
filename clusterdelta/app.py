"""Application bootstrap for clusterdelta.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → metrics → delta store
              → control plane client → registration → encoder → exporter
              → heartbeat

Shutdown is graceful: the export and heartbeat loops are cancelled first,
then the kubernetes client is closed.  A cancelled export restores any
deltas it had already flushed, so nothing recorded before shutdown is lost
from the in-memory store.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from clusterdelta.config import load_config
from clusterdelta.models.config import ClusterDeltaConfig
from clusterdelta.observability.logging import bind_cluster, get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    from kubernetes_asyncio.client import ApiClient

    from clusterdelta.cluster.reader import KubeClusterReader
    from clusterdelta.encoder.snapshot_encoder import SnapshotEncoder
    from clusterdelta.exporter import Exporter
    from clusterdelta.store.delta_store import DeltaStore
    from clusterdelta.transport.client import ControlPlaneClient

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class ClusterDeltaApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or is
    already stopped.
    """

    def __init__(self) -> None:
        self.config: ClusterDeltaConfig | None = None

        self._api_client: ApiClient | None = None
        self._reader: KubeClusterReader | None = None
        self.store: DeltaStore | None = None
        self._client: ControlPlaneClient | None = None
        self._encoder: SnapshotEncoder | None = None
        self._exporter: Exporter | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("clusterdelta_starting", version=_clusterdelta_version())

        await self._start_k8s_client()
        self._start_metrics_server()
        self._start_store()
        await self._start_control_plane()
        self._start_exporter()
        self._start_heartbeat()

        self._running = True
        self._log.info(
            "clusterdelta_started",
            interval_seconds=self.config.export.interval_seconds,
            full_snapshot_every=self.config.export.full_snapshot_every,
        )

    async def _start_k8s_client(self) -> None:
        """Build the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting_k8s_client")
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            from clusterdelta.cluster.reader import KubeClusterReader

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s_client_configured", source="in-cluster")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s_client_configured", source="kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._reader = KubeClusterReader(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_metrics_server(self) -> None:
        """Expose prometheus metrics when a port is configured."""
        assert self._log is not None
        assert self.config is not None
        port = self.config.metrics.port
        if not port:
            self._log.info("metrics_server_disabled")
            return
        try:
            from prometheus_client import start_http_server

            start_http_server(port)
            self._log.info("metrics_server_started", port=port)
        except OSError as exc:
            raise _ComponentError("metrics", exc) from exc

    def _start_store(self) -> None:
        from clusterdelta.store.delta_store import DeltaStore

        self.store = DeltaStore()

    async def _start_control_plane(self) -> None:
        """Build the control plane client and register the cluster if it has no ID yet."""
        assert self._log is not None
        assert self.config is not None
        from clusterdelta.models.controlplane import ClusterParams, RegisterClusterRequest
        from clusterdelta.transport.client import ControlPlaneClient
        from clusterdelta.transport.errors import ControlPlaneError

        cp = self.config.control_plane
        try:
            self._client = ControlPlaneClient(
                endpoint=cp.endpoint,
                api_key=cp.api_key,
                cluster_id=self.config.cluster_id,
                timeout=cp.timeout_seconds,
                max_attempts=cp.max_attempts,
                retry_backoff=cp.retry_backoff_seconds,
            )
            if not self._client.cluster_id:
                request = RegisterClusterRequest(
                    agent_version=_clusterdelta_version(),
                    cloud_provider=self.config.cloud_provider,
                    cluster_params=ClusterParams(
                        cluster_name=self.config.cluster_name,
                        region=self.config.region,
                    ),
                )
                await self._client.register_cluster(request)
        except (ValueError, ControlPlaneError) as exc:
            raise _ComponentError("control_plane", exc) from exc

        bind_cluster(self._client.cluster_id)
        self._log.info("control_plane_ready", endpoint=cp.endpoint)

    def _start_exporter(self) -> None:
        """Launch the periodic export loop."""
        assert self._log is not None
        assert self.config is not None
        assert self.store is not None
        assert self._reader is not None
        assert self._client is not None
        from clusterdelta.encoder.snapshot_encoder import SnapshotEncoder
        from clusterdelta.exporter import Exporter

        self._encoder = SnapshotEncoder(self.store, self._reader)
        self._exporter = Exporter(self.store, self._encoder, self._client, self.config.export)
        task = asyncio.create_task(self._exporter.run(), name="exporter")
        self._background_tasks.append(task)
        self._log.info("exporter_started")

    def _start_heartbeat(self) -> None:
        """Launch a periodic heartbeat to the control plane."""
        assert self._log is not None
        assert self.config is not None
        assert self._client is not None
        from clusterdelta.transport.errors import ControlPlaneError

        client = self._client
        interval = self.config.export.heartbeat_interval_seconds
        log = self._log

        async def _heartbeat() -> None:
            while True:
                try:
                    await client.send_heartbeat()
                except ControlPlaneError as exc:
                    log.warning("heartbeat_failed", error=str(exc), status_code=exc.status_code)
                await asyncio.sleep(interval)

        task = asyncio.create_task(_heartbeat(), name="heartbeat")
        self._background_tasks.append(task)
        self._log.info("heartbeat_started", interval_seconds=interval)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Cancel background loops, then release the kubernetes client."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("clusterdelta_shutting_down")

        self._running = False

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()

        if self._background_tasks:
            _, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            if pending:
                log.warning("background_tasks_stop_timed_out", pending=[t.get_name() for t in pending])
        self._background_tasks.clear()

        if self.store is not None:
            node_deltas, workload_deltas = self.store.pending_counts()
            log.info("pending_deltas_at_shutdown", node_deltas=node_deltas, workload_deltas=workload_deltas)

        await self._stop_k8s_client()
        log.info("clusterdelta_stopped")

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self._api_client = None


def _clusterdelta_version() -> str:
    from clusterdelta import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = ClusterDeltaApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()
