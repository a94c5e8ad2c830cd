"""Event model used for streaming tree progress and replay.

The scheduler produces a sequence of events per tree. Hosts can record them to JSONL to replay
a run (debugging, audits, UI playback) or forward them to a live view.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from researchtree.utils.ids import utcnow


class EventType(str, Enum):
    """High-level event categories."""

    SYSTEM = "system"
    MCTS = "mcts"
    ERROR = "error"


class ContentType(str, Enum):
    """Semantic types within event streams."""

    TREE_STARTED = "tree_started"
    TREE_STOPPED = "tree_stopped"

    NODE_SELECTED = "node_selected"
    EXPANSION_RECORDED = "expansion_recorded"
    CHILD_ATTACHED = "child_attached"
    ITERATION_RECORDED = "iteration_recorded"

    PERSISTENCE_FAILED = "persistence_failed"
    ITERATION_ERROR = "iteration_error"


class TreeEvent(BaseModel):
    """A single event in a tree run."""

    tree_id: str
    seq: int = Field(ge=1)
    ts: datetime = Field(default_factory=utcnow)

    event_type: EventType
    content_type: ContentType

    data: str | dict | list | None = None
    metadata: dict[str, str | int | float | bool | None] = Field(default_factory=dict)


class EventRecorder(Protocol):
    def append(self, event: TreeEvent) -> None:
        """Record an event."""
