"""Audit records.

Both records are frozen: they are appended to the audit log once and never mutated.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from researchtree.utils.ids import utcnow


class MCTSIteration(BaseModel):
    """One selection -> expansion -> simulation -> backpropagation cycle."""

    model_config = ConfigDict(frozen=True)

    id: str
    tree_id: str
    iteration_number: int = Field(ge=1)

    selected_node_id: str
    expanded_node_id: str | None = None
    simulation_result: float = Field(default=0.0, ge=0.0, le=1.0)

    duration_ms: float = Field(default=0.0, ge=0.0)
    created_at: datetime = Field(default_factory=utcnow)


class ResearchExpansion(BaseModel):
    """The record of one expansion attempt on a node.

    A failed attempt carries `error_kind`/`error` and whatever content was produced before the
    failure.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    tree_id: str
    node_id: str

    generated_topics: list[str] = Field(default_factory=list)
    selected_topic: str = ""
    generated_question: str = ""
    generated_summary: str = ""

    search_query: str = ""
    found_literature_ids: list[str] = Field(default_factory=list)
    selected_literature_id: str | None = None

    relevance_score: float | None = Field(default=None, ge=0.0, le=1.0)
    novelty_score: float | None = Field(default=None, ge=0.0, le=1.0)
    feasibility_score: float | None = Field(default=None, ge=0.0, le=1.0)

    error_kind: str | None = None
    error: str | None = None

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None
