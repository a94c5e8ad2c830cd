"""UCB1 selection scores and simulation rewards.

    UCB1(n) = win_sum(n) / visits(n) + c * sqrt(ln(visits(parent)) / visits(n))

Unvisited nodes score +inf so they are always tried before any visited sibling. A parent with
zero visits contributes ln(...) = 0. The root has no parent and uses its own visit count.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from researchtree.models.node import NodeStatus, ResearchTreeNode
from researchtree.store.tree_store import TreeStore


def ucb1(visits: int, win_sum: float, parent_visits: int, exploration_weight: float) -> float:
    """Pure UCB1 score."""

    if visits == 0:
        return math.inf
    exploitation = win_sum / visits
    log_parent = math.log(parent_visits) if parent_visits > 0 else 0.0
    exploration = exploration_weight * math.sqrt(log_parent / visits)
    return exploitation + exploration


def simulation_reward(
    relevance: float | None,
    novelty: float | None,
    feasibility: float | None,
    *,
    default: float = 0.5,
) -> float:
    """Unweighted mean of the three quality scores, missing ones replaced by `default`."""

    scores = [default if s is None else s for s in (relevance, novelty, feasibility)]
    reward = sum(scores) / len(scores)
    return min(max(reward, 0.0), 1.0)


@dataclass(frozen=True)
class Scorer:
    """Computes and records UCB1 scores for nodes of a store."""

    store: TreeStore

    def score(self, tree_id: str, node: ResearchTreeNode, *, parent_visits: int | None = None) -> float:
        """Score a node without writing it back. Terminal nodes score -inf."""

        if node.status == NodeStatus.TERMINAL:
            return -math.inf
        c = self.store.get_tree(tree_id).params.exploration_weight
        if parent_visits is None:
            if node.parent_id is None:
                parent_visits = node.visits
            else:
                parent_visits = self.store.get_node(tree_id, node.parent_id).visits
        return ucb1(node.visits, node.win_sum, parent_visits, c)

    def evaluate(self, tree_id: str, node_id: str) -> float:
        """Recompute a node's UCB1 score and store it on the node."""

        node = self.store.get_node(tree_id, node_id)
        value = self.score(tree_id, node)
        self.store.set_ucb1_score(tree_id, node_id, value if math.isfinite(value) else None)
        return value
