"""Shared buffers of pending deltas."""

from clusterdelta.store.delta_store import DeltaBuffers, DeltaStore

__all__ = ["DeltaBuffers", "DeltaStore"]
