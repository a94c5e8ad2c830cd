"""Tree statistics and path analysis."""

from __future__ import annotations

from researchtree.models.node import ResearchTreeNode
from researchtree.models.statistics import TopicCluster, TreePath, TreeStatistics
from researchtree.utils.ids import node_sort_key


def calculate_tree_statistics(
    nodes: list[ResearchTreeNode],
    *,
    path_limit: int = 5,
    cluster_limit: int = 10,
) -> TreeStatistics:
    """Summarize a tree's node set.

    Args:
        nodes: Every node of one tree.
        path_limit: Number of best paths to keep.
        cluster_limit: Number of topic clusters to keep.

    Returns:
        Statistics; all-zero for an empty node list.
    """

    if not nodes:
        return TreeStatistics()

    total = len(nodes)
    total_visits = sum(n.visits for n in nodes)
    inner = [n for n in nodes if n.children]
    branching = sum(len(n.children) for n in inner) / len(inner) if inner else 0.0

    return TreeStatistics(
        total_nodes=total,
        max_depth=max(n.depth for n in nodes),
        average_depth=sum(n.depth for n in nodes) / total,
        total_visits=total_visits,
        average_visits=total_visits / total,
        branching_factor=branching,
        best_paths=find_best_paths(nodes, path_limit),
        topic_clusters=topic_clusters(nodes, cluster_limit),
    )


def find_best_paths(nodes: list[ResearchTreeNode], limit: int) -> list[TreePath]:
    """Rank root-to-leaf paths by the mean win rate of their visited nodes."""

    by_id = {n.id: n for n in nodes}
    paths: list[TreePath] = []
    for leaf in (n for n in nodes if not n.children):
        ids: list[str] = []
        total_score = 0.0
        visited = 0
        current: ResearchTreeNode | None = leaf
        while current is not None:
            ids.append(current.id)
            if current.visits > 0:
                total_score += current.mean_reward
                visited += 1
            current = by_id.get(current.parent_id) if current.parent_id else None
        ids.reverse()
        paths.append(
            TreePath(
                node_ids=ids,
                total_score=total_score,
                average_score=total_score / visited if visited else 0.0,
                depth=len(ids) - 1,
            )
        )

    # Stable sort keeps id order among equal scores.
    paths.sort(key=lambda p: node_sort_key(p.node_ids[-1]))
    paths.sort(key=lambda p: p.average_score, reverse=True)
    return paths[:limit]


def topic_clusters(nodes: list[ResearchTreeNode], limit: int) -> list[TopicCluster]:
    """Group nodes by case-insensitive topic, largest groups first."""

    groups: dict[str, tuple[int, float]] = {}
    for n in nodes:
        key = n.topic.strip().lower()
        count, score = groups.get(key, (0, 0.0))
        groups[key] = (count + 1, score + n.mean_reward)

    clusters = [
        TopicCluster(topic=topic, node_count=count, average_score=score / count)
        for topic, (count, score) in groups.items()
    ]
    clusters.sort(key=lambda c: c.node_count, reverse=True)
    return clusters[:limit]


def best_nodes(nodes: list[ResearchTreeNode], limit: int = 10) -> list[ResearchTreeNode]:
    """Visited nodes with the highest mean reward."""

    visited = [n for n in nodes if n.visits > 0]
    visited.sort(key=lambda n: n.mean_reward, reverse=True)
    return visited[:limit]
