"""Completion request/response models."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class PromptSpec(BaseModel):
    """What the completion service is asked to expand."""

    topic: str
    question: str | None = None
    summary: str | None = None
    path_topics: list[str] = Field(default_factory=list)
    sibling_topics: list[str] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)
    candidate_count: int = Field(default=3, ge=1)


class GenerationResult(BaseModel):
    """Parsed output of one completion call."""

    topics: list[str] = Field(default_factory=list)
    question: str = ""
    summary: str = ""
    search_query: str = ""

    relevance: float | None = Field(default=None, ge=0.0, le=1.0)
    novelty: float | None = Field(default=None, ge=0.0, le=1.0)
    feasibility: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("topics")
    @classmethod
    def _clean_topics(cls, v: list[str]) -> list[str]:
        return [t.strip() for t in v if isinstance(t, str) and t.strip()]
