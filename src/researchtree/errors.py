"""Engine error types.

Store-level errors (capacity, depth, transitions, lookups) signal logic errors and are raised to
the caller. Collaborator-level errors (generation, search) are transient: the expander records
them and retries the node later. Persistence errors pause the whole tree.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for research tree engine errors."""

    kind = "engine_error"


class CapacityExceeded(EngineError):
    """Adding a node would exceed the tree's `max_nodes`."""

    kind = "capacity_exceeded"


class DepthExceeded(EngineError):
    """Adding a node would exceed the tree's `max_depth`."""

    kind = "depth_exceeded"


class InvalidTransition(EngineError):
    """A node status change is not allowed by the state machine."""

    kind = "invalid_transition"

    def __init__(self, node_id: str, current: str, requested: str) -> None:
        super().__init__(f"node {node_id}: {current} -> {requested} is not allowed")
        self.node_id = node_id
        self.current = current
        self.requested = requested


class TreeNotFound(EngineError, LookupError):
    kind = "tree_not_found"


class NodeNotFound(EngineError, LookupError):
    kind = "node_not_found"


class CollaboratorError(EngineError):
    """A collaborator call failed; retried per node up to the retry budget."""

    kind = "collaborator_error"


class GenerationFailed(CollaboratorError):
    kind = "generation_failed"


class GenerationTimeout(CollaboratorError):
    kind = "generation_timeout"


class SearchFailed(CollaboratorError):
    kind = "search_failed"


class PersistenceFailed(EngineError):
    """The artifact sink rejected a batch."""

    kind = "persistence_failed"
