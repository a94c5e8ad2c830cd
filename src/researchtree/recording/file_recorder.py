"""Event recorders.

`FileEventRecorder` appends to `events.jsonl` for replay; `MemoryEventRecorder` keeps events in
a list for in-process observers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from researchtree.events import ContentType, TreeEvent


@dataclass
class FileEventRecorder:
    """Append-only JSONL recorder."""

    path: Path

    def __post_init__(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, event: TreeEvent) -> None:
        """Append an event."""

        line = json.dumps(event.model_dump(mode="json"), ensure_ascii=False)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


@dataclass
class MemoryEventRecorder:
    events: list[TreeEvent] = field(default_factory=list)

    def append(self, event: TreeEvent) -> None:
        self.events.append(event)

    def of_type(self, content_type: ContentType) -> list[TreeEvent]:
        return [e for e in self.events if e.content_type == content_type]


def iter_events(path: Path) -> list[TreeEvent]:
    """Load all events from a JSONL file."""

    events: list[TreeEvent] = []
    if not path.exists():
        return events
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        events.append(TreeEvent.model_validate_json(line))
    return events
