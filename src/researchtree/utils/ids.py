"""ID utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def format_node_id(n: int, prefix: str = "n_") -> str:
    """Format a per-tree node counter to a node id (e.g., n_0001)."""

    return f"{prefix}{n:04d}"


def node_counter(node_id: str) -> int:
    """Creation counter encoded in a node id, 0 when the id carries none."""

    _, _, counter = node_id.rpartition("_")
    return int(counter) if counter.isdigit() else 0


def node_sort_key(node_id: str) -> tuple[int, str]:
    """Order node ids by creation counter.

    Padding only keeps lexical order up to n_9999, so comparisons go through the counter.
    """

    return node_counter(node_id), node_id


def new_record_id(prefix: str) -> str:
    """Return a random id such as `tree_1a2b3c4d5e6f`."""

    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(UTC)
