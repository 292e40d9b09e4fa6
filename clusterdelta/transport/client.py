"""HTTP client for the fleet-optimization control plane.

Every request carries the ``X-API-KEY`` header and every response body is
the envelope ``{code, message, data}``.  A call succeeds only on HTTP 200
with an envelope code of 0 or 200.  The heartbeat is the exception: it only
needs HTTP 200.

Simple calls are attempted once.  Bulk calls (deltas, optimization
expectations, event data) are retried with a fixed backoff on network
errors, 429 and 5xx responses other than 501.  An HTTP 200 with a failing
envelope code is a definitive rejection and is never retried.
"""

from __future__ import annotations

import asyncio
import gzip
import json
from typing import Any, Final

import httpx

from clusterdelta.models.controlplane import (
    ClusterRebalanceConfiguration,
    ClusterRebalanceState,
    ClusterRebalanceStatus,
    RegisterClusterRequest,
    ResponseEnvelope,
    WorkloadRebalanceConfiguration,
)
from clusterdelta.observability.logging import get_logger
from clusterdelta.observability.metrics import transport_requests_total, transport_retries_total
from clusterdelta.transport.errors import ControlPlaneError, EnvelopeError, RetriesExhaustedError

_log = get_logger("transport.client")

API_KEY_HEADER: Final[str] = "X-API-KEY"
_JSON: Final[dict[str, str]] = {"Content-Type": "application/json"}


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or (status_code >= 500 and status_code != 501)


class _RetryableError(Exception):
    """One failed bulk attempt that may be repeated."""

    def __init__(self, reason: str, status_code: int | None = None, server_message: str = "") -> None:
        super().__init__(reason)
        self.status_code = status_code
        self.server_message = server_message


class ControlPlaneClient:
    """Async client for the control plane REST API.

    A fresh ``httpx.AsyncClient`` is opened per call so the client can be
    shared between tasks without lifecycle management.

    Args:
        endpoint:      Base URL, e.g. ``https://api.example.com``.
        api_key:       Value of the ``X-API-KEY`` header.
        cluster_id:    Cluster identity; replaced by :meth:`register_cluster`.
        timeout:       Per-request timeout in seconds.
        max_attempts:  Total attempts for bulk calls (>= 1).
        retry_backoff: Fixed delay between bulk attempts, in seconds.
        transport:     Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        cluster_id: str = "",
        timeout: float = 30.0,
        max_attempts: int = 5,
        retry_backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Control plane endpoint must not be empty")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._base = endpoint.rstrip("/")
        self._api_key = api_key
        self.cluster_id = cluster_id
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._retry_backoff = retry_backoff
        self._transport = transport

    # ------------------------------------------------------------------
    # Simple calls
    # ------------------------------------------------------------------

    async def register_cluster(self, request: RegisterClusterRequest) -> str:
        """Register the cluster and adopt the cluster ID the control plane assigns."""
        envelope = await self._simple("register", "POST", "/api/v1/clusters/registration", request.to_dict())
        data = envelope.data or {}
        cluster_id = str(data.get("clusterId") or "")
        if not cluster_id:
            raise EnvelopeError("Registration response carries no cluster ID", status_code=200)
        self.cluster_id = cluster_id
        _log.info("cluster_registered", cluster_id=cluster_id)
        return cluster_id

    async def send_heartbeat(self) -> None:
        """Ping the control plane; only the HTTP status is checked, the body is ignored."""
        await self._request("heartbeat", "GET", f"/api/v1/clusters/{self.cluster_id}/heartbeat")
        transport_requests_total.labels(endpoint="heartbeat", outcome="success").inc()

    async def get_rebalance_configuration(self) -> ClusterRebalanceConfiguration:
        envelope = await self._simple(
            "get_rebalance_configuration",
            "GET",
            f"/api/v1/rebalance/clusters/{self.cluster_id}/configuration",
        )
        return ClusterRebalanceConfiguration.from_dict(envelope.data or {})

    async def update_rebalance_configuration(self, config: ClusterRebalanceConfiguration) -> None:
        await self._simple(
            "update_rebalance_configuration",
            "POST",
            f"/api/v1/rebalance/clusters/{self.cluster_id}/configuration",
            config.to_dict(),
        )

    async def get_rebalance_status(self) -> ClusterRebalanceStatus:
        envelope = await self._simple(
            "get_rebalance_status",
            "GET",
            f"/api/v1/rebalance/clusters/{self.cluster_id}/status",
        )
        return ClusterRebalanceStatus.from_dict(envelope.data or {})

    async def update_rebalance_status(self, state: ClusterRebalanceState, message: str = "") -> None:
        await self._simple(
            "update_rebalance_status",
            "POST",
            f"/api/v1/rebalance/clusters/{self.cluster_id}/status",
            ClusterRebalanceStatus(state=state, message=message).to_dict(),
        )

    async def get_workload_rebalance_configuration(self) -> WorkloadRebalanceConfiguration:
        envelope = await self._simple(
            "get_workload_rebalance_configuration",
            "GET",
            f"/api/v1/rebalance/clusters/{self.cluster_id}/workloads/configuration",
        )
        return WorkloadRebalanceConfiguration.from_dict(envelope.data or {})

    # ------------------------------------------------------------------
    # Bulk calls
    # ------------------------------------------------------------------

    async def send_cluster_deltas(self, payload: bytes) -> None:
        """POST an encoded cluster snapshot."""
        await self._bulk("deltas", f"/api/v1/clusters/{self.cluster_id}/deltas", payload, _JSON)

    async def send_optimization_expectation(self, payload: bytes) -> None:
        await self._bulk("optimization", f"/api/v1/clusters/{self.cluster_id}/optimization", payload, _JSON)

    async def send_event_data(self, data: bytes, url_path: str) -> None:
        """POST *data* gzip-compressed to *url_path*.

        *url_path* may contain a ``{cluster_id}`` placeholder.

        Raises:
            ValueError: if *data* is empty.
        """
        if not data:
            raise ValueError("Event data must not be empty")
        path = url_path.format(cluster_id=self.cluster_id)
        headers = {**_JSON, "Content-Encoding": "gzip"}
        await self._bulk("event_data", path, gzip.compress(data), headers)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base,
            timeout=self._timeout,
            headers={API_KEY_HEADER: self._api_key},
            transport=self._transport,
        )

    async def _simple(
        self,
        endpoint: str,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> ResponseEnvelope:
        response = await self._request(endpoint, method, path, body)
        return self._accept(endpoint, response)

    async def _request(
        self,
        endpoint: str,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request and require HTTP 200."""
        content = json.dumps(body).encode("utf-8") if body is not None else None
        try:
            async with self._client() as client:
                response = await client.request(method, path, content=content, headers=_JSON)
        except httpx.HTTPError as exc:
            transport_requests_total.labels(endpoint=endpoint, outcome="network_error").inc()
            _log.warning("control_plane_request_failed", endpoint=endpoint, error=str(exc))
            raise ControlPlaneError(f"{endpoint}: request failed: {exc}") from exc

        if response.status_code != 200:
            message = _server_message(response)
            transport_requests_total.labels(endpoint=endpoint, outcome="http_error").inc()
            _log.warning("control_plane_non_200", endpoint=endpoint, status_code=response.status_code, message=message)
            raise ControlPlaneError(
                f"{endpoint}: HTTP {response.status_code}: {message}",
                status_code=response.status_code,
                server_message=message,
            )
        return response

    async def _bulk(self, endpoint: str, path: str, content: bytes, headers: dict[str, str]) -> ResponseEnvelope:
        last: _RetryableError | None = None
        for attempt in range(1, self._max_attempts + 1):
            if attempt > 1:
                transport_retries_total.labels(endpoint=endpoint).inc()
                await asyncio.sleep(self._retry_backoff)
            try:
                return await self._bulk_attempt(endpoint, path, content, headers)
            except _RetryableError as exc:
                last = exc
                _log.warning(
                    "control_plane_attempt_failed",
                    endpoint=endpoint,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    status_code=exc.status_code,
                    error=str(exc),
                )

        assert last is not None
        transport_requests_total.labels(endpoint=endpoint, outcome="exhausted").inc()
        raise RetriesExhaustedError(
            f"{endpoint}: giving up after {self._max_attempts} attempts: {last}",
            attempts=self._max_attempts,
            status_code=last.status_code,
            server_message=last.server_message,
        )

    async def _bulk_attempt(
        self,
        endpoint: str,
        path: str,
        content: bytes,
        headers: dict[str, str],
    ) -> ResponseEnvelope:
        try:
            async with self._client() as client:
                # httpx decodes gzip-encoded response bodies itself.
                response = await client.post(path, content=content, headers=headers)
        except httpx.TransportError as exc:
            raise _RetryableError(f"request failed: {exc}") from exc
        except httpx.HTTPError as exc:
            # Undecodable bodies and redirect loops will not improve on retry.
            transport_requests_total.labels(endpoint=endpoint, outcome="network_error").inc()
            _log.warning("control_plane_request_failed", endpoint=endpoint, error=str(exc))
            raise ControlPlaneError(f"{endpoint}: request failed: {exc}") from exc

        if response.status_code == 200:
            return self._accept(endpoint, response)

        message = _server_message(response)
        if _is_retryable_status(response.status_code):
            raise _RetryableError(f"HTTP {response.status_code}: {message}", response.status_code, message)

        transport_requests_total.labels(endpoint=endpoint, outcome="http_error").inc()
        _log.warning("control_plane_non_200", endpoint=endpoint, status_code=response.status_code, message=message)
        raise ControlPlaneError(
            f"{endpoint}: HTTP {response.status_code}: {message}",
            status_code=response.status_code,
            server_message=message,
        )

    def _accept(self, endpoint: str, response: httpx.Response) -> ResponseEnvelope:
        """Parse the envelope of an HTTP 200 response and check its code."""
        try:
            envelope = ResponseEnvelope.from_dict(response.json())
        except (ValueError, AttributeError) as exc:
            transport_requests_total.labels(endpoint=endpoint, outcome="envelope_error").inc()
            raise EnvelopeError(f"{endpoint}: malformed response envelope: {exc}", status_code=200) from exc

        if not envelope.ok:
            transport_requests_total.labels(endpoint=endpoint, outcome="envelope_error").inc()
            _log.warning("control_plane_rejected", endpoint=endpoint, code=envelope.code, message=envelope.message)
            raise EnvelopeError(
                f"{endpoint}: rejected with code {envelope.code}: {envelope.message}",
                status_code=200,
                server_message=envelope.message,
                code=envelope.code,
            )

        transport_requests_total.labels(endpoint=endpoint, outcome="success").inc()
        return envelope


def _server_message(response: httpx.Response) -> str:
    """Envelope ``message`` of an error response, falling back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:200]
