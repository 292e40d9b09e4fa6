"""Errors raised at the Cluster Read API boundary."""

from __future__ import annotations


class ClusterReadError(Exception):
    """Raised when a list or get against the cluster API fails."""

    def __init__(self, what: str, cause: Exception | str, status: int | None = None) -> None:
        super().__init__(f"Failed to read {what}: {cause}")
        self.what = what
        self.status = status


class NotFoundError(ClusterReadError):
    """Raised when a requested object does not exist."""
