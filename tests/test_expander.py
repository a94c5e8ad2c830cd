"""Tests for the expansion phase."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FakeCompletion, FakeSearch, candidate

from researchtree.audit import AuditLog
from researchtree.config import EngineConfig
from researchtree.errors import GenerationFailed, SearchFailed
from researchtree.mcts.expander import Expander
from researchtree.models.generation import GenerationResult
from researchtree.models.node import NodeDraft, NodeStatus
from researchtree.models.tree import TreeParams
from researchtree.store.tree_store import TreeStore


def _setup(completion, search=None, params: TreeParams | None = None, **config):
    store = TreeStore()
    audit = AuditLog()
    tree = store.create_tree("s", params, topic="root")
    expander = Expander(store, audit, completion, search or FakeSearch(), EngineConfig(**config))
    return store, audit, tree, expander


def _expand_once(store: TreeStore, expander: Expander, tree_id: str, node_id: str):
    node = store.set_status(tree_id, node_id, NodeStatus.EXPANDING)
    outcome = asyncio.run(expander.generate(tree_id, node))
    return outcome, expander.attach(tree_id, node_id, outcome)


def test_successful_expansion_attaches_child() -> None:
    """It should attach a child carrying the reward, literature links and generated content."""

    search = FakeSearch([candidate("p1", rank=1), candidate("p2", rank=2)])
    store, audit, tree, expander = _setup(FakeCompletion(scores=(0.9, 0.6, 0.6)), search)

    outcome, child = _expand_once(store, expander, tree.id, tree.root_node_id)

    assert outcome.succeeded
    assert child is not None
    assert child.topic == "root / angle 1.1"
    assert child.visits == 1
    assert child.win_sum == pytest.approx(0.7)
    assert child.primary_literature_id == "p1"
    assert child.related_literature_ids == ["p1", "p2"]
    assert child.question == "What does angle 1 add?"
    assert store.get_root(tree.id).status == NodeStatus.EXPANDED
    assert search.queries == ["query 1"]

    records = audit.expansions_for_node(tree.id, tree.root_node_id)
    assert len(records) == 1
    assert records[0].succeeded
    assert records[0].selected_literature_id == "p1"


def test_three_failures_make_node_terminal() -> None:
    """It should mark a node terminal after the retry budget of failed attempts."""

    completion = FakeCompletion([GenerationFailed("boom")] * 3)
    store, audit, tree, expander = _setup(completion, expansion_retry_budget=3)
    rid = tree.root_node_id

    for attempt in range(3):
        _outcome, child = _expand_once(store, expander, tree.id, rid)
        assert child is None
        expected = NodeStatus.TERMINAL if attempt == 2 else NodeStatus.UNEXPLORED
        assert store.get_root(tree.id).status == expected

    records = audit.expansions_for_node(tree.id, rid)
    assert len(records) == 3
    assert all(r.error_kind == "generation_failed" for r in records)
    assert store.get_tree(tree.id).total_nodes == 1


def test_exhausted_node_with_children_keeps_its_subtree() -> None:
    """It should close widening on a node with children instead of making it terminal."""

    completion = FakeCompletion([GenerationFailed("boom"), GenerationFailed("boom")])
    store, audit, tree, expander = _setup(completion, expansion_retry_budget=2)
    rid = tree.root_node_id
    store.set_status(tree.id, rid, NodeStatus.EXPANDING)
    store.add_child(tree.id, rid, NodeDraft(topic="existing", visits=1, win_sum=0.5))
    store.set_status(tree.id, rid, NodeStatus.EXPANDED)
    store.update_stats(tree.id, rid, 1, 0.5)

    for _ in range(2):
        _outcome, child = _expand_once(store, expander, tree.id, rid)
        assert child is None

    root = store.get_root(tree.id)
    assert root.status == NodeStatus.EXPANDED
    assert root.widening_closed is True
    assert audit.failure_count(tree.id, rid) == 2


def test_timeout_is_recorded_as_generation_timeout() -> None:
    """It should turn a slow completion into a generation_timeout failure."""

    store, audit, tree, expander = _setup(FakeCompletion(delay_s=1.0), expansion_timeout_s=0.01)

    outcome, child = _expand_once(store, expander, tree.id, tree.root_node_id)

    assert child is None
    assert outcome.expansion.error_kind == "generation_timeout"
    assert store.get_root(tree.id).status == NodeStatus.UNEXPLORED


@pytest.mark.parametrize("error", [SearchFailed("down"), RuntimeError("socket closed")])
def test_search_errors_are_recorded_as_search_failed(error: Exception) -> None:
    """It should record literature search failures with the generated content kept."""

    store, audit, tree, expander = _setup(FakeCompletion(), FakeSearch(error=error))

    outcome, child = _expand_once(store, expander, tree.id, tree.root_node_id)

    assert child is None
    assert outcome.expansion.error_kind == "search_failed"
    assert outcome.expansion.selected_topic == "root / angle 1.1"
    assert audit.failure_count(tree.id, tree.root_node_id) == 1


def test_topic_already_used_by_sibling_is_skipped() -> None:
    """It should pick the first candidate not already used by an existing child."""

    script = [GenerationResult(topics=["existing", "Fresh idea"], search_query="")]
    store, audit, tree, expander = _setup(FakeCompletion(script))
    rid = tree.root_node_id
    store.set_status(tree.id, rid, NodeStatus.EXPANDING)
    store.add_child(tree.id, rid, NodeDraft(topic="Existing"))
    store.set_status(tree.id, rid, NodeStatus.EXPANDED)

    _outcome, child = _expand_once(store, expander, tree.id, rid)

    assert child is not None
    assert child.topic == "Fresh idea"
    # Missing scores fall back to the default quality score.
    assert child.win_sum == pytest.approx(0.5)


def test_no_usable_topic_is_a_generation_failure() -> None:
    """It should fail the attempt when every candidate duplicates a sibling."""

    script = [GenerationResult(topics=["Existing"])]
    store, audit, tree, expander = _setup(FakeCompletion(script))
    rid = tree.root_node_id
    store.set_status(tree.id, rid, NodeStatus.EXPANDING)
    store.add_child(tree.id, rid, NodeDraft(topic="existing"))
    store.set_status(tree.id, rid, NodeStatus.EXPANDED)

    outcome, child = _expand_once(store, expander, tree.id, rid)

    assert child is None
    assert outcome.expansion.error_kind == "generation_failed"
    assert store.get_root(tree.id).status == NodeStatus.EXPANDED


def test_child_at_max_depth_is_terminal() -> None:
    """It should move a child created at max_depth straight to terminal."""

    store, audit, tree, expander = _setup(FakeCompletion(), params=TreeParams(max_depth=1))

    _outcome, child = _expand_once(store, expander, tree.id, tree.root_node_id)

    assert child is not None
    assert child.depth == 1
    assert child.status == NodeStatus.TERMINAL


def test_capacity_rejection_does_not_consume_retry_budget() -> None:
    """It should release the node and record the rejection without counting it as a failure."""

    store, audit, tree, expander = _setup(FakeCompletion(), params=TreeParams(max_nodes=2))
    rid = tree.root_node_id
    node = store.set_status(tree.id, rid, NodeStatus.EXPANDING)
    outcome = asyncio.run(expander.generate(tree.id, node))
    store.add_child(tree.id, rid, NodeDraft(topic="filled meanwhile"))

    child = expander.attach(tree.id, rid, outcome)

    assert child is None
    records = audit.expansions_for_node(tree.id, rid)
    assert [r.error_kind for r in records] == ["capacity_exceeded"]
    assert audit.failure_count(tree.id, rid) == 0
    assert store.get_root(tree.id).status == NodeStatus.EXPANDED
    assert store.get_tree(tree.id).total_nodes == 2


def test_prompt_spec_carries_path_and_siblings() -> None:
    """It should describe the node, its ancestors and its existing children."""

    store, audit, tree, expander = _setup(FakeCompletion(), candidate_topics=4)
    rid = tree.root_node_id
    store.set_status(tree.id, rid, NodeStatus.EXPANDING)
    a = store.add_child(tree.id, rid, NodeDraft(topic="A", question="why A?"))
    store.add_child(tree.id, a.id, NodeDraft(topic="A1"))

    spec = expander.prompt_spec(tree.id, store.get_node(tree.id, a.id))

    assert spec.topic == "A"
    assert spec.question == "why A?"
    assert spec.path_topics == ["root", "A"]
    assert spec.sibling_topics == ["A1"]
    assert spec.depth == 1
    assert spec.candidate_count == 4
