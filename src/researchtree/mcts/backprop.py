"""Backpropagation phase."""

from __future__ import annotations

from dataclasses import dataclass

from researchtree.mcts.scorer import Scorer
from researchtree.store.tree_store import TreeStore


@dataclass(frozen=True)
class Backpropagator:
    """Folds a simulation reward from a new child up to the root."""

    store: TreeStore
    scorer: Scorer

    def propagate(self, tree_id: str, child_id: str, reward: float) -> list[str]:
        """Add one visit and `reward` to every ancestor of `child_id`, root included.

        The child itself already carries its first visit from creation. Afterwards the stored
        UCB1 score of the child and of every updated ancestor is refreshed; siblings keep their
        stored score until they are next evaluated (selection always scores live).

        Returns:
            Updated ancestor ids, parent first.
        """

        if not 0.0 <= reward <= 1.0:
            raise ValueError(f"reward must be within [0, 1], got {reward}")

        child = self.store.get_node(tree_id, child_id)
        updated: list[str] = []
        current = child.parent_id
        while current is not None:
            node = self.store.update_stats(tree_id, current, 1, reward)
            updated.append(node.id)
            current = node.parent_id

        for node_id in [child_id, *updated]:
            self.scorer.evaluate(tree_id, node_id)
        return updated
