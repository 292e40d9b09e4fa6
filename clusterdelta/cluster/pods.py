"""Pod inspection helpers shared by the aggregator and the encoder."""

from __future__ import annotations

from typing import Any, Final

from clusterdelta.ledger.resources import ResourceLedger, sum_container_requests

POD_RUNNING: Final[str] = "Running"
POD_PENDING: Final[str] = "Pending"
POD_SUCCEEDED: Final[str] = "Succeeded"
POD_FAILED: Final[str] = "Failed"

_COMPLETED_REASON: Final[str] = "PodCompleted"


def pod_phase(pod: dict[str, Any]) -> str:
    return str((pod.get("status") or {}).get("phase") or "")


def pod_key(pod: dict[str, Any]) -> tuple[str, str]:
    """``(namespace, name)`` identity of a pod."""
    metadata = pod.get("metadata") or {}
    return (str(metadata.get("namespace") or ""), str(metadata.get("name") or ""))


def owner_references(obj: dict[str, Any]) -> list[dict[str, Any]]:
    return list((obj.get("metadata") or {}).get("ownerReferences") or [])


def is_terminating(pod: dict[str, Any]) -> bool:
    return bool((pod.get("metadata") or {}).get("deletionTimestamp"))


def is_terminal(pod: dict[str, Any]) -> bool:
    return pod_phase(pod) in (POD_SUCCEEDED, POD_FAILED)


def counts_toward_requests(pod: dict[str, Any]) -> bool:
    """Running or Pending and not being deleted."""
    return pod_phase(pod) in (POD_RUNNING, POD_PENDING) and not is_terminating(pod)


def is_pod_ready(pod: dict[str, Any]) -> bool:
    """Ready condition is True, or the pod completed successfully."""
    for condition in (pod.get("status") or {}).get("conditions") or []:
        if condition.get("type") != "Ready":
            continue
        if condition.get("reason") == _COMPLETED_REASON or condition.get("status") == "True":
            return True
    return False


def is_owned_by(pod: dict[str, Any], api_version: str, kind: str) -> bool:
    return any(
        ref.get("apiVersion") == api_version and ref.get("kind") == kind for ref in owner_references(pod)
    )


def should_reschedule(pod: dict[str, Any]) -> bool:
    """Whether draining the pod's node would have to move this pod.

    Static pods, DaemonSet pods, finished pods and pods already being
    deleted stay behind.
    """
    return not (
        is_owned_by(pod, "v1", "Node")
        or is_owned_by(pod, "apps/v1", "DaemonSet")
        or is_terminal(pod)
        or is_terminating(pod)
    )


def pod_requests(pod: dict[str, Any]) -> ResourceLedger:
    """Sum of the container resource requests declared by *pod*."""
    return sum_container_requests((pod.get("spec") or {}).get("containers"))
