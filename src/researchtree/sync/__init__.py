"""Artifact batches and sinks."""

from __future__ import annotations

from researchtree.sync.batch import (
    ArtifactBatch,
    TreeExport,
    export_tree_data,
    fold_batches,
    import_tree_data,
    load_batches,
)
from researchtree.sync.sinks import ArtifactSink, FileArtifactSink, NullArtifactSink, RedisArtifactSink

__all__ = [
    "ArtifactBatch",
    "ArtifactSink",
    "FileArtifactSink",
    "NullArtifactSink",
    "RedisArtifactSink",
    "TreeExport",
    "export_tree_data",
    "fold_batches",
    "import_tree_data",
    "load_batches",
]
