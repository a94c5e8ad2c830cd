"""Artifact batches and tree exports.

A batch carries everything that changed in a tree since the previous batch: the tree record,
the changed nodes and the newly appended audit records. The receiving store merges batches by
id, so sending a node twice is harmless and order between batches of one tree only matters for
the tree record itself.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field

from researchtree.audit import AuditLog
from researchtree.models.audit import MCTSIteration, ResearchExpansion
from researchtree.models.node import ResearchTreeNode
from researchtree.models.tree import ResearchTree
from researchtree.store.tree_store import TreeStore
from researchtree.utils.ids import node_sort_key, utcnow


class ArtifactBatch(BaseModel):
    """Well-formed unit of writes handed to the artifact sink."""

    tree_id: str
    tree: ResearchTree
    nodes: list[ResearchTreeNode] = Field(default_factory=list)
    iterations: list[MCTSIteration] = Field(default_factory=list)
    expansions: list[ResearchExpansion] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_empty(self) -> bool:
        return not (self.nodes or self.iterations or self.expansions)


class TreeExport(BaseModel):
    """Complete data of one tree."""

    tree: ResearchTree
    nodes: list[ResearchTreeNode]
    iterations: list[MCTSIteration] = Field(default_factory=list)
    expansions: list[ResearchExpansion] = Field(default_factory=list)


def export_tree_data(store: TreeStore, audit: AuditLog, tree_id: str) -> TreeExport:
    tree, nodes = store.export_tree(tree_id)
    return TreeExport(
        tree=tree,
        nodes=nodes,
        iterations=audit.iterations(tree_id),
        expansions=audit.expansions(tree_id),
    )


def import_tree_data(store: TreeStore, audit: AuditLog, data: TreeExport) -> ResearchTree:
    """Load an exported tree into a store and audit log.

    Raises:
        ValueError: The export violates a tree invariant.
    """

    tree = store.import_tree(data.tree, data.nodes)
    audit.load(tree.id, data.iterations, data.expansions)
    return tree


def fold_batches(batches: Iterable[ArtifactBatch]) -> TreeExport | None:
    """Rebuild a tree from its batches: id-union, later versions of a record win."""

    tree: ResearchTree | None = None
    nodes: dict[str, ResearchTreeNode] = {}
    iterations: dict[str, MCTSIteration] = {}
    expansions: dict[str, ResearchExpansion] = {}
    for batch in batches:
        tree = batch.tree
        nodes.update((n.id, n) for n in batch.nodes)
        iterations.update((it.id, it) for it in batch.iterations)
        expansions.update((e.id, e) for e in batch.expansions)
    if tree is None:
        return None
    return TreeExport(
        tree=tree,
        nodes=[nodes[k] for k in sorted(nodes, key=node_sort_key)],
        iterations=sorted(iterations.values(), key=lambda it: it.iteration_number),
        expansions=list(expansions.values()),
    )


def load_batches(path: Path) -> list[ArtifactBatch]:
    """Load all batches from a JSONL artifact file."""

    batches: list[ArtifactBatch] = []
    if not path.exists():
        return batches
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        batches.append(ArtifactBatch.model_validate(json.loads(line)))
    return batches
