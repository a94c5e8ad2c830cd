"""Tree analysis models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TreePath(BaseModel):
    """A root-to-leaf path scored by the win rate of its visited nodes."""

    node_ids: list[str]
    total_score: float
    average_score: float
    depth: int


class TopicCluster(BaseModel):
    topic: str
    node_count: int
    average_score: float


class TreeStatistics(BaseModel):
    total_nodes: int = 0
    max_depth: int = 0
    average_depth: float = 0.0
    total_visits: int = 0
    average_visits: float = 0.0
    branching_factor: float = 0.0

    best_paths: list[TreePath] = Field(default_factory=list)
    topic_clusters: list[TopicCluster] = Field(default_factory=list)
