"""Tree store.

This component is the authoritative owner of research trees and their nodes. Nodes live in a
per-tree arena keyed by id; parent/child relations are id references.

Every method is synchronous and free of suspension points, so a sequence of calls made by one
coroutine cannot interleave with another coroutine's calls. Callers that need a multi-step
critical section spanning an ``await`` (the scheduler's select / attach / persist phases) hold
``lock(tree_id)``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from researchtree.errors import (
    CapacityExceeded,
    DepthExceeded,
    InvalidTransition,
    NodeNotFound,
    TreeNotFound,
)
from researchtree.logging import get_logger
from researchtree.models.node import NodeDraft, NodeStatus, ResearchTreeNode, can_transition
from researchtree.models.tree import ResearchTree, TreeParams, TreeStatus
from researchtree.utils.ids import format_node_id, new_record_id, node_counter, node_sort_key, utcnow

logger = get_logger(__name__)


@dataclass
class _TreeRecord:
    tree: ResearchTree
    nodes: dict[str, ResearchTreeNode]
    next_node: int
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    dirty: set[str] = field(default_factory=set)


class TreeStore:
    """In-memory arena of research trees."""

    def __init__(self) -> None:
        self._trees: dict[str, _TreeRecord] = {}

    # ── Trees ──

    def create_tree(
        self,
        session_id: str,
        params: TreeParams | None = None,
        *,
        topic: str,
        title: str | None = None,
        description: str | None = None,
    ) -> ResearchTree:
        """Create a tree with a single unexplored root.

        Args:
            session_id: Owning session.
            params: Search parameters; defaults apply when omitted.
            topic: Root topic.
            title: Display title, defaults to the topic.
            description: Optional description.

        Returns:
            The new tree.
        """

        tree_id = new_record_id("tree")
        root_id = format_node_id(1)
        root = ResearchTreeNode(id=root_id, tree_id=tree_id, topic=topic, depth=0)
        tree = ResearchTree(
            id=tree_id,
            session_id=session_id,
            title=title or topic,
            description=description,
            root_node_id=root_id,
            params=params or TreeParams(),
        )
        record = _TreeRecord(tree=tree, nodes={root_id: root}, next_node=2)
        record.dirty.add(root_id)
        self._recompute(record)
        self._trees[tree_id] = record

        logger.info(
            "Tree created",
            extra={"tree_id": tree_id, "session_id": session_id, "max_nodes": tree.params.max_nodes},
        )
        return tree.model_copy(deep=True)

    def get_tree(self, tree_id: str) -> ResearchTree:
        return self._record(tree_id).tree.model_copy(deep=True)

    def trees_for_session(self, session_id: str) -> list[ResearchTree]:
        """Trees owned by a session, oldest first."""

        trees = [r.tree for r in self._trees.values() if r.tree.session_id == session_id]
        trees.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in trees]

    def delete_tree(self, tree_id: str) -> None:
        self._record(tree_id)
        del self._trees[tree_id]

    def set_tree_status(self, tree_id: str, status: TreeStatus) -> ResearchTree:
        record = self._record(tree_id)
        if record.tree.status != status:
            logger.info(
                "Tree status changed",
                extra={"tree_id": tree_id, "from": record.tree.status.value, "to": status.value},
            )
        record.tree.status = status
        record.tree.updated_at = utcnow()
        return record.tree.model_copy(deep=True)

    def lock(self, tree_id: str) -> asyncio.Lock:
        """Per-tree lock serializing structural mutation phases."""

        return self._record(tree_id).lock

    # ── Nodes ──

    def get_node(self, tree_id: str, node_id: str) -> ResearchTreeNode:
        return self._node(self._record(tree_id), node_id).model_copy(deep=True)

    def get_root(self, tree_id: str) -> ResearchTreeNode:
        record = self._record(tree_id)
        return self._node(record, record.tree.root_node_id).model_copy(deep=True)

    def list_nodes(self, tree_id: str) -> list[ResearchTreeNode]:
        """All nodes of a tree ordered by id."""

        record = self._record(tree_id)
        return [record.nodes[nid].model_copy(deep=True) for nid in sorted(record.nodes, key=node_sort_key)]

    def get_children(self, tree_id: str, node_id: str) -> list[ResearchTreeNode]:
        record = self._record(tree_id)
        node = self._node(record, node_id)
        return [record.nodes[cid].model_copy(deep=True) for cid in node.children]

    def get_path(self, tree_id: str, node_id: str) -> list[ResearchTreeNode]:
        """Nodes from the root down to `node_id` inclusive."""

        record = self._record(tree_id)
        path: list[ResearchTreeNode] = []
        current: str | None = node_id
        while current is not None:
            node = self._node(record, current)
            path.append(node.model_copy(deep=True))
            current = node.parent_id
        path.reverse()
        return path

    def add_child(self, tree_id: str, parent_id: str, draft: NodeDraft) -> ResearchTreeNode:
        """Attach a new child under `parent_id`.

        Raises:
            CapacityExceeded: The tree already holds `max_nodes` nodes.
            DepthExceeded: The child would sit deeper than `max_depth`.
        """

        record = self._record(tree_id)
        parent = self._node(record, parent_id)
        params = record.tree.params

        if len(record.nodes) + 1 > params.max_nodes:
            raise CapacityExceeded(
                f"tree {tree_id} holds {len(record.nodes)} nodes (max_nodes={params.max_nodes})"
            )
        depth = parent.depth + 1
        if depth > params.max_depth:
            raise DepthExceeded(f"depth {depth} exceeds max_depth={params.max_depth} in tree {tree_id}")

        node_id = format_node_id(record.next_node)
        child = ResearchTreeNode(
            id=node_id,
            tree_id=tree_id,
            parent_id=parent_id,
            depth=depth,
            **draft.model_dump(),
        )
        record.next_node += 1
        record.nodes[node_id] = child
        parent.children.append(node_id)
        parent.updated_at = utcnow()
        record.dirty.update({node_id, parent_id})
        self._recompute(record)
        return child.model_copy(deep=True)

    def update_stats(self, tree_id: str, node_id: str, visit_delta: int, score_delta: float) -> ResearchTreeNode:
        """Increment visits and win sum. The UCB1 score is left to the scorer."""

        if visit_delta < 0 or score_delta < 0:
            raise ValueError("statistics only grow: deltas must be non-negative")
        record = self._record(tree_id)
        node = self._node(record, node_id)
        node.visits += visit_delta
        node.win_sum += score_delta
        node.updated_at = utcnow()
        record.dirty.add(node_id)
        self._recompute(record)
        return node.model_copy(deep=True)

    def set_ucb1_score(self, tree_id: str, node_id: str, score: float | None) -> None:
        record = self._record(tree_id)
        node = self._node(record, node_id)
        if node.ucb1_score != score:
            node.ucb1_score = score
            record.dirty.add(node_id)

    def set_status(self, tree_id: str, node_id: str, status: NodeStatus) -> ResearchTreeNode:
        """Move a node through the status state machine.

        Raises:
            InvalidTransition: The transition is not allowed.
        """

        record = self._record(tree_id)
        node = self._node(record, node_id)
        if not can_transition(node.status, status):
            raise InvalidTransition(node_id, node.status.value, status.value)
        node.status = status
        node.updated_at = utcnow()
        record.dirty.add(node_id)
        return node.model_copy(deep=True)

    def close_widening(self, tree_id: str, node_id: str) -> ResearchTreeNode:
        """Stop a node from receiving further children while keeping its subtree selectable."""

        record = self._record(tree_id)
        node = self._node(record, node_id)
        if not node.widening_closed:
            node.widening_closed = True
            node.updated_at = utcnow()
            record.dirty.add(node_id)
        return node.model_copy(deep=True)

    # ── Persistence hand-off ──

    def drain_dirty(self, tree_id: str) -> list[ResearchTreeNode]:
        """Return and clear the nodes changed since the last drain."""

        record = self._record(tree_id)
        ids = sorted(record.dirty, key=node_sort_key)
        record.dirty.clear()
        return [record.nodes[nid].model_copy(deep=True) for nid in ids if nid in record.nodes]

    def mark_dirty(self, tree_id: str, node_ids: list[str]) -> None:
        """Re-queue nodes whose batch could not be persisted."""

        record = self._record(tree_id)
        record.dirty.update(nid for nid in node_ids if nid in record.nodes)

    # ── Snapshots ──

    def export_tree(self, tree_id: str) -> tuple[ResearchTree, list[ResearchTreeNode]]:
        return self.get_tree(tree_id), self.list_nodes(tree_id)

    def import_tree(self, tree: ResearchTree, nodes: list[ResearchTreeNode]) -> ResearchTree:
        """Load a previously exported tree, replacing any tree with the same id.

        Raises:
            ValueError: The snapshot violates a structural invariant.
        """

        by_id = {n.id: n.model_copy(deep=True) for n in nodes}
        problems = _structural_problems(tree, by_id)
        if problems:
            raise ValueError(f"invalid snapshot for tree {tree.id}: {'; '.join(problems)}")

        next_node = 1 + max((node_counter(nid) for nid in by_id), default=0)
        record = _TreeRecord(tree=tree.model_copy(deep=True), nodes=by_id, next_node=next_node)
        record.dirty.update(by_id)
        self._recompute(record)
        self._trees[tree.id] = record
        logger.info("Tree imported", extra={"tree_id": tree.id, "nodes": len(by_id)})
        return record.tree.model_copy(deep=True)

    def verify(self, tree_id: str) -> list[str]:
        """List invariant violations (empty when the tree is consistent)."""

        record = self._record(tree_id)
        problems = _structural_problems(record.tree, record.nodes)
        expected_visits = sum(n.visits for n in record.nodes.values())
        if record.tree.total_nodes != len(record.nodes):
            problems.append("total_nodes out of sync")
        if record.tree.total_visits != expected_visits:
            problems.append("total_visits out of sync")
        return problems

    # ── Internals ──

    def _record(self, tree_id: str) -> _TreeRecord:
        record = self._trees.get(tree_id)
        if record is None:
            raise TreeNotFound(f"unknown tree {tree_id}")
        return record

    @staticmethod
    def _node(record: _TreeRecord, node_id: str) -> ResearchTreeNode:
        node = record.nodes.get(node_id)
        if node is None:
            raise NodeNotFound(f"unknown node {node_id} in tree {record.tree.id}")
        return node

    @staticmethod
    def _recompute(record: _TreeRecord) -> None:
        nodes = record.nodes.values()
        count = len(record.nodes)
        record.tree.total_nodes = count
        record.tree.total_visits = sum(n.visits for n in nodes)
        record.tree.average_depth = sum(n.depth for n in nodes) / count if count else 0.0
        record.tree.updated_at = utcnow()


def _structural_problems(tree: ResearchTree, nodes: dict[str, ResearchTreeNode]) -> list[str]:
    problems: list[str] = []
    root = nodes.get(tree.root_node_id)
    if root is None:
        return [f"root {tree.root_node_id} missing"]
    if root.parent_id is not None or root.depth != 0:
        problems.append("root must have no parent and depth 0")
    if len(nodes) > tree.params.max_nodes:
        problems.append(f"{len(nodes)} nodes exceed max_nodes={tree.params.max_nodes}")

    for node in nodes.values():
        if node.depth > tree.params.max_depth:
            problems.append(f"{node.id} deeper than max_depth")
        if node.parent_id is None:
            if node.id != tree.root_node_id:
                problems.append(f"{node.id} has no parent")
            continue
        parent = nodes.get(node.parent_id)
        if parent is None:
            problems.append(f"{node.id} references missing parent {node.parent_id}")
            continue
        if node.depth != parent.depth + 1:
            problems.append(f"{node.id} depth {node.depth} != parent depth + 1")
        if node.visits > parent.visits:
            problems.append(f"{node.id} has more visits than its parent")

    for node in nodes.values():
        expected = {n.id for n in nodes.values() if n.parent_id == node.id}
        if set(node.children) != expected or len(node.children) != len(expected):
            problems.append(f"{node.id} children list does not match parent references")
    return problems
