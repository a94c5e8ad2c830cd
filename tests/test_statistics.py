"""Tests for tree statistics."""

from __future__ import annotations

import pytest

from researchtree.models.node import ResearchTreeNode
from researchtree.store.statistics import best_nodes, calculate_tree_statistics, find_best_paths, topic_clusters


def _node(nid: str, parent: str | None, depth: int, visits: int, win: float, topic: str, children=()) -> ResearchTreeNode:
    return ResearchTreeNode(
        id=nid,
        tree_id="t",
        parent_id=parent,
        depth=depth,
        visits=visits,
        win_sum=win,
        topic=topic,
        children=list(children),
    )


def _sample() -> list[ResearchTreeNode]:
    return [
        _node("n_0001", None, 0, 3, 1.5, "Root", ["n_0002", "n_0003"]),
        _node("n_0002", "n_0001", 1, 2, 1.6, "Retrieval", ["n_0004"]),
        _node("n_0003", "n_0001", 1, 1, 0.2, "retrieval "),
        _node("n_0004", "n_0002", 2, 1, 0.9, "Reranking"),
    ]


def test_calculate_tree_statistics() -> None:
    """It should summarize size, depth, visits and branching."""

    stats = calculate_tree_statistics(_sample())

    assert stats.total_nodes == 4
    assert stats.max_depth == 2
    assert stats.average_depth == pytest.approx(1.0)
    assert stats.total_visits == 7
    assert stats.average_visits == pytest.approx(1.75)
    assert stats.branching_factor == pytest.approx(1.5)
    assert stats.best_paths[0].node_ids == ["n_0001", "n_0002", "n_0004"]


def test_empty_tree_statistics() -> None:
    """It should return zeroed statistics for no nodes."""

    stats = calculate_tree_statistics([])
    assert stats.total_nodes == 0
    assert stats.best_paths == []


def test_best_paths_ranked_by_average_win_rate() -> None:
    """It should rank root-to-leaf paths by the mean reward of their visited nodes."""

    paths = find_best_paths(_sample(), limit=5)

    assert [p.node_ids[-1] for p in paths] == ["n_0004", "n_0003"]
    assert paths[0].average_score == pytest.approx((0.5 + 0.8 + 0.9) / 3)
    assert paths[0].depth == 2
    assert paths[1].average_score == pytest.approx(0.35)
    assert find_best_paths(_sample(), limit=1) == paths[:1]


def test_topic_clusters_group_case_insensitively() -> None:
    """It should merge topics differing only in case and surrounding whitespace."""

    clusters = topic_clusters(_sample(), limit=10)

    assert clusters[0].topic == "retrieval"
    assert clusters[0].node_count == 2
    assert clusters[0].average_score == pytest.approx((0.8 + 0.2) / 2)


def test_best_nodes_skip_unvisited() -> None:
    """It should order visited nodes by mean reward and leave unvisited ones out."""

    nodes = _sample() + [_node("n_0005", "n_0004", 3, 0, 0.0, "Fresh")]

    assert [n.id for n in best_nodes(nodes, limit=2)] == ["n_0004", "n_0002"]
    assert "n_0005" not in {n.id for n in best_nodes(nodes)}
