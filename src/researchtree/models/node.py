"""Research tree node models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from researchtree.utils.ids import utcnow


class NodeStatus(str, Enum):
    """Lifecycle stage of a research tree node."""

    UNEXPLORED = "unexplored"
    EXPANDING = "expanding"
    EXPANDED = "expanded"
    TERMINAL = "terminal"


# Terminal is absorbing. EXPANDING -> UNEXPLORED releases a childless node after a failed
# attempt that left retry budget; EXPANDING -> EXPANDED does the same for a node with children.
ALLOWED_TRANSITIONS: dict[NodeStatus, frozenset[NodeStatus]] = {
    NodeStatus.UNEXPLORED: frozenset({NodeStatus.EXPANDING, NodeStatus.TERMINAL}),
    NodeStatus.EXPANDING: frozenset({NodeStatus.EXPANDED, NodeStatus.TERMINAL, NodeStatus.UNEXPLORED}),
    NodeStatus.EXPANDED: frozenset({NodeStatus.EXPANDING}),
    NodeStatus.TERMINAL: frozenset(),
}


def can_transition(current: NodeStatus, requested: NodeStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


def _dedup(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for x in ids:
        if x not in seen:
            out.append(x)
            seen.add(x)
    return out


class NodeDraft(BaseModel):
    """Content for a node that is about to be attached.

    Statistics are set at creation: an expanded child starts with one visit whose reward is
    the expansion's simulation result.
    """

    topic: str = Field(min_length=1)
    summary: str | None = None
    question: str | None = None
    expansion_reason: str | None = None
    primary_literature_id: str | None = None
    related_literature_ids: list[str] = Field(default_factory=list)
    visits: int = Field(default=0, ge=0)
    win_sum: float = Field(default=0.0, ge=0.0)

    @field_validator("related_literature_ids")
    @classmethod
    def _unique_related(cls, v: list[str]) -> list[str]:
        return _dedup(v)


class ResearchTreeNode(BaseModel):
    """A node in the exploration tree.

    Literature is referenced by id only; the node never carries literature content.
    """

    id: str
    tree_id: str
    parent_id: str | None = None

    visits: int = Field(default=0, ge=0)
    win_sum: float = Field(default=0.0, ge=0.0)
    ucb1_score: float | None = None

    topic: str
    summary: str | None = None
    question: str | None = None
    expansion_reason: str | None = None

    primary_literature_id: str | None = None
    related_literature_ids: list[str] = Field(default_factory=list)

    children: list[str] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)

    status: NodeStatus = NodeStatus.UNEXPLORED
    # Set when the retry budget runs out on a node that already has children: the subtree
    # stays reachable, the node itself gets no further children.
    widening_closed: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("related_literature_ids")
    @classmethod
    def _unique_related(cls, v: list[str]) -> list[str]:
        return _dedup(v)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def mean_reward(self) -> float:
        """Average reward, 0.0 for unvisited nodes."""
        return self.win_sum / self.visits if self.visits > 0 else 0.0
