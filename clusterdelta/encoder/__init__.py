"""Export-cycle encoding of buffered deltas plus live cluster state."""

from clusterdelta.encoder.snapshot_encoder import (
    EncodedSnapshot,
    ExportPhase,
    SnapshotEncoder,
    SnapshotEncodingError,
)

__all__ = ["EncodedSnapshot", "ExportPhase", "SnapshotEncoder", "SnapshotEncodingError"]
