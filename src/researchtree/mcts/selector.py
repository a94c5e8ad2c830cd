"""Selection phase: descend from the root to the node to expand next."""

from __future__ import annotations

import math
from dataclasses import dataclass

from researchtree.logging import get_logger
from researchtree.mcts.scorer import Scorer
from researchtree.models.node import NodeStatus, ResearchTreeNode
from researchtree.models.tree import ResearchTree
from researchtree.store.tree_store import TreeStore
from researchtree.utils.ids import node_sort_key

logger = get_logger(__name__)


@dataclass(frozen=True)
class Selector:
    """Picks the iteration's node and claims it by moving it to `expanding`."""

    store: TreeStore
    scorer: Scorer

    def select(self, tree_id: str) -> ResearchTreeNode | None:
        """Choose and claim a node.

        Returns:
            The claimed node (status `expanding`), or None when the tree is at capacity or
            nothing is selectable right now.
        """

        tree = self.store.get_tree(tree_id)
        if tree.total_nodes >= tree.params.max_nodes:
            return None

        chosen = self._descend(tree, self.store.get_root(tree_id))
        if chosen is None:
            return None
        claimed = self.store.set_status(tree_id, chosen.id, NodeStatus.EXPANDING)
        logger.debug("Node selected", extra={"tree_id": tree_id, "node_id": claimed.id, "depth": claimed.depth})
        return claimed

    def peek(self, tree_id: str) -> ResearchTreeNode | None:
        """The node `select` would choose, without claiming it."""

        tree = self.store.get_tree(tree_id)
        if tree.total_nodes >= tree.params.max_nodes:
            return None
        return self._descend(tree, self.store.get_root(tree_id))

    def rank_children(self, tree_id: str, node: ResearchTreeNode) -> list[tuple[float, ResearchTreeNode]]:
        """Non-terminal children ordered by UCB1 descending, ties by lowest id."""

        ranked: list[tuple[float, ResearchTreeNode]] = []
        for child in self.store.get_children(tree_id, node.id):
            score = self.scorer.score(tree_id, child, parent_visits=node.visits)
            if score == -math.inf:
                continue
            ranked.append((score, child))
        ranked.sort(key=lambda pair: node_sort_key(pair[1].id))
        ranked.sort(key=lambda pair: pair[0], reverse=True)
        return ranked

    def _descend(self, tree: ResearchTree, node: ResearchTreeNode) -> ResearchTreeNode | None:
        if node.status == NodeStatus.TERMINAL:
            return None
        if _is_selectable(tree, node):
            if node.status == NodeStatus.EXPANDED:
                # An unvisited child outranks widening its parent.
                for score, child in self.rank_children(tree.id, node):
                    if score != math.inf:
                        break
                    found = self._descend(tree, child)
                    if found is not None:
                        return found
            return node
        # Dead-end subtrees (all terminal or mid-expansion) fall through to the next sibling.
        for _score, child in self.rank_children(tree.id, node):
            found = self._descend(tree, child)
            if found is not None:
                return found
        return None


def _is_selectable(tree: ResearchTree, node: ResearchTreeNode) -> bool:
    if node.status == NodeStatus.UNEXPLORED:
        return True
    if node.status == NodeStatus.EXPANDED and not node.widening_closed:
        return len(node.children) < tree.params.max_children_per_node and node.depth < tree.params.max_depth
    return False
