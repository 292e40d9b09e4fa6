"""Root owner resolution over controller ownership chains.

A pod's first owner reference is followed upward (Pod -> ReplicaSet ->
Deployment, Pod -> Job -> CronJob, ...) until an object with no owner is
found.  The walk is bounded at :data:`MAX_OWNER_DEPTH` fetches, which also
stops ownership cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from clusterdelta.cluster.errors import ClusterReadError
from clusterdelta.cluster.pods import owner_references

if TYPE_CHECKING:
    from clusterdelta.cluster.reader import ClusterReader

MAX_OWNER_DEPTH: Final[int] = 10


class OwnerResolutionError(Exception):
    """Raised when an owner in the chain cannot be fetched."""


class MaxDepthExceededError(OwnerResolutionError):
    """Raised when no root owner is found within MAX_OWNER_DEPTH fetches."""


def gvk_string(api_version: str, kind: str) -> str:
    """Render a group-version-kind as ``apps/v1, Kind=Deployment``.

    The core group renders with an empty group: ``/v1, Kind=Node``.
    """
    group, _, version = api_version.rpartition("/")
    return f"{group}/{version}, Kind={kind}"


@dataclass(frozen=True)
class RootOwner:
    """The topmost controller of a pod, with the type it was fetched as."""

    api_version: str
    kind: str
    obj: dict[str, Any]

    @property
    def metadata(self) -> dict[str, Any]:
        return self.obj.get("metadata") or {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace") or "")

    @property
    def uid(self) -> str:
        return str(self.metadata.get("uid") or "")

    @property
    def gvk(self) -> str:
        return gvk_string(self.api_version, self.kind)


async def find_root_owner(reader: ClusterReader, namespace: str, owner_ref: dict[str, Any]) -> RootOwner:
    """Follow *owner_ref* upward and return the object with no further owner.

    Raises:
        OwnerResolutionError: if an object in the chain cannot be fetched.
        MaxDepthExceededError: if MAX_OWNER_DEPTH fetches do not reach a root.
    """
    ref = owner_ref
    for _ in range(MAX_OWNER_DEPTH):
        api_version = str(ref.get("apiVersion") or "")
        kind = str(ref.get("kind") or "")
        name = str(ref.get("name") or "")
        try:
            obj = await reader.get_object(api_version, kind, namespace, name)
        except ClusterReadError as exc:
            raise OwnerResolutionError(f"failed to get owner {kind} {namespace}/{name}: {exc}") from exc

        owners = owner_references(obj)
        if not owners:
            return RootOwner(api_version=api_version, kind=kind, obj=obj)
        ref = owners[0]

    raise MaxDepthExceededError(
        f"{ref.get('name', '')} reached maximum recursion depth {MAX_OWNER_DEPTH} without finding ultimate owner"
    )
