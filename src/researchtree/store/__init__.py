"""Tree storage and analysis."""

from __future__ import annotations

from researchtree.store.statistics import best_nodes, calculate_tree_statistics
from researchtree.store.tree_store import TreeStore

__all__ = ["TreeStore", "best_nodes", "calculate_tree_statistics"]
