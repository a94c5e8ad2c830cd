"""Recording utilities for tree events."""

from __future__ import annotations

from researchtree.recording.file_recorder import FileEventRecorder, MemoryEventRecorder, iter_events

__all__ = ["FileEventRecorder", "MemoryEventRecorder", "iter_events"]
