"""Cluster Read API boundary.

The export pipeline only needs list/get verbs with eventually-consistent
semantics; it never watches.  :class:`ClusterReader` is the protocol every
component codes against, and :class:`KubeClusterReader` implements it on top
of kubernetes-asyncio.  All objects cross this boundary as plain JSON dicts
in the Kubernetes camelCase shape (``metadata.ownerReferences``,
``status.allocatable`` ...), so fakes in tests are trivial to build.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final, Protocol

import aiohttp
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio.client.rest import ApiException

from clusterdelta.cluster.errors import ClusterReadError, NotFoundError
from clusterdelta.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_log = get_logger("cluster.reader")

_METRICS_GROUP: Final[str] = "metrics.k8s.io"
_METRICS_VERSION: Final[str] = "v1beta1"


class ClusterReader(Protocol):
    """List/get access to live cluster state."""

    async def list_nodes(self) -> list[dict[str, Any]]: ...

    async def list_pods(self, node_name: str | None = None) -> list[dict[str, Any]]: ...

    async def get_object(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]: ...

    async def get_namespace(self, name: str) -> dict[str, Any]: ...

    async def list_node_metrics(self, node_name: str | None = None) -> list[dict[str, Any]]: ...

    async def list_pod_metrics(self) -> list[dict[str, Any]]: ...


# (apiVersion, kind) -> (api group attribute, namespaced read method)
_TYPED_READERS: Final[dict[tuple[str, str], tuple[str, str]]] = {
    ("apps/v1", "Deployment"): ("_apps", "read_namespaced_deployment"),
    ("apps/v1", "ReplicaSet"): ("_apps", "read_namespaced_replica_set"),
    ("apps/v1", "StatefulSet"): ("_apps", "read_namespaced_stateful_set"),
    ("apps/v1", "DaemonSet"): ("_apps", "read_namespaced_daemon_set"),
    ("batch/v1", "Job"): ("_batch", "read_namespaced_job"),
    ("batch/v1", "CronJob"): ("_batch", "read_namespaced_cron_job"),
    ("v1", "ReplicationController"): ("_core", "read_namespaced_replication_controller"),
}


class KubeClusterReader:
    """:class:`ClusterReader` backed by a kubernetes-asyncio ``ApiClient``.

    Typed kinds are read through their generated APIs and converted to dicts
    with ``sanitize_for_serialization``; any other owner kind is fetched as a
    custom object, deriving the plural by lower-casing the kind and adding
    ``s``.
    """

    def __init__(self, api_client: k8s_client.ApiClient) -> None:
        self._api_client = api_client
        self._core = k8s_client.CoreV1Api(api_client)
        self._apps = k8s_client.AppsV1Api(api_client)
        self._batch = k8s_client.BatchV1Api(api_client)
        self._custom = k8s_client.CustomObjectsApi(api_client)

    async def list_nodes(self) -> list[dict[str, Any]]:
        result = await self._call("nodes", self._core.list_node)
        return self._items(result)

    async def list_pods(self, node_name: str | None = None) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if node_name:
            kwargs["field_selector"] = f"spec.nodeName={node_name}"
        result = await self._call("pods", self._core.list_pod_for_all_namespaces, **kwargs)
        return self._items(result)

    async def get_object(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
        what = f"{kind} {namespace}/{name}"
        if (api_version, kind) == ("v1", "Node"):
            result = await self._call(what, self._core.read_node, name)
            return self._to_dict(result)

        typed = _TYPED_READERS.get((api_version, kind))
        if typed is not None:
            api_attr, method = typed
            read_fn = getattr(getattr(self, api_attr), method)
            result = await self._call(what, read_fn, name, namespace)
            return self._to_dict(result)

        group, _, version = api_version.rpartition("/")
        return await self._call(
            what,
            self._custom.get_namespaced_custom_object,
            group,
            version,
            namespace,
            f"{kind.lower()}s",
            name,
        )

    async def get_namespace(self, name: str) -> dict[str, Any]:
        result = await self._call(f"namespace {name}", self._core.read_namespace, name)
        return self._to_dict(result)

    async def list_node_metrics(self, node_name: str | None = None) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {}
        if node_name:
            kwargs["field_selector"] = f"metadata.name={node_name}"
        result = await self._call(
            "node metrics",
            self._custom.list_cluster_custom_object,
            _METRICS_GROUP,
            _METRICS_VERSION,
            "nodes",
            **kwargs,
        )
        return list(result.get("items") or [])

    async def list_pod_metrics(self) -> list[dict[str, Any]]:
        result = await self._call(
            "pod metrics",
            self._custom.list_cluster_custom_object,
            _METRICS_GROUP,
            _METRICS_VERSION,
            "pods",
        )
        return list(result.get("items") or [])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, what: str, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        try:
            return await fn(*args, **kwargs)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(what, exc.reason or "not found", status=404) from exc
            _log.debug("cluster_read_failed", what=what, status=exc.status, reason=exc.reason)
            raise ClusterReadError(what, exc.reason or str(exc), status=exc.status) from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            _log.debug("cluster_read_failed", what=what, error=str(exc))
            raise ClusterReadError(what, exc) from exc

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self._api_client.sanitize_for_serialization(obj)  # type: ignore[no-any-return]

    def _items(self, result: Any) -> list[dict[str, Any]]:
        return list(self._to_dict(result).get("items") or [])
