"""Research tree aggregate models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from researchtree.utils.ids import utcnow


class TreeStatus(str, Enum):
    BUILDING = "building"
    COMPLETED = "completed"
    PAUSED = "paused"


class TreeParams(BaseModel):
    """Search parameters fixed at tree creation."""

    exploration_weight: float = Field(default=1.414, gt=0.0)
    max_depth: int = Field(default=5, ge=1)
    max_nodes: int = Field(default=50, ge=1)
    max_children_per_node: int = Field(default=3, ge=1)


class ResearchTree(BaseModel):
    """A single-rooted research tree.

    Aggregates are recomputed by the store from the node set after every change.
    """

    id: str
    session_id: str
    title: str
    description: str | None = None
    root_node_id: str

    params: TreeParams = Field(default_factory=TreeParams)

    total_nodes: int = Field(default=1, ge=0)
    total_visits: int = Field(default=0, ge=0)
    average_depth: float = Field(default=0.0, ge=0.0)

    status: TreeStatus = TreeStatus.BUILDING

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
