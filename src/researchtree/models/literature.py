"""Literature models.

The engine stores literature ids on nodes; these models are only what the collaborators return.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class LiteratureCandidate(BaseModel):
    """A single literature search hit."""

    id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    year: int | None = None
    venue: str | None = None
    abstract: str | None = None
    url: str | None = None
    rank: int = Field(default=1, ge=1)


class LiteratureRecord(BaseModel):
    """Display data for a referenced paper."""

    id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    year: int | None = None
    venue: str | None = None
    abstract: str | None = None
    url: str | None = None
