"""Append-only audit log of iterations and expansion attempts.

Records are frozen models; the log only ever appends. Records not yet handed to the artifact
sink are tracked per tree so a failed write can be retried with the next batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from researchtree.errors import GenerationFailed, GenerationTimeout, SearchFailed
from researchtree.models.audit import MCTSIteration, ResearchExpansion
from researchtree.utils.ids import new_record_id

# Failure kinds that consume a node's retry budget.
RETRYABLE_KINDS = frozenset({GenerationFailed.kind, GenerationTimeout.kind, SearchFailed.kind})


@dataclass
class _TreeAudit:
    iterations: list[MCTSIteration] = field(default_factory=list)
    expansions: list[ResearchExpansion] = field(default_factory=list)
    pending_iterations: list[MCTSIteration] = field(default_factory=list)
    pending_expansions: list[ResearchExpansion] = field(default_factory=list)


class AuditLog:
    """In-memory audit log keyed by tree id."""

    def __init__(self) -> None:
        self._trees: dict[str, _TreeAudit] = {}

    def record_iteration(
        self,
        tree_id: str,
        *,
        selected_node_id: str,
        expanded_node_id: str | None,
        simulation_result: float,
        duration_ms: float,
    ) -> MCTSIteration:
        """Append an iteration with the next sequence number for the tree."""

        audit = self._audit(tree_id)
        iteration = MCTSIteration(
            id=new_record_id("iter"),
            tree_id=tree_id,
            iteration_number=len(audit.iterations) + 1,
            selected_node_id=selected_node_id,
            expanded_node_id=expanded_node_id,
            simulation_result=simulation_result,
            duration_ms=max(duration_ms, 0.0),
        )
        audit.iterations.append(iteration)
        audit.pending_iterations.append(iteration)
        return iteration

    def record_expansion(self, expansion: ResearchExpansion) -> ResearchExpansion:
        audit = self._audit(expansion.tree_id)
        audit.expansions.append(expansion)
        audit.pending_expansions.append(expansion)
        return expansion

    def iterations(self, tree_id: str) -> list[MCTSIteration]:
        return list(self._audit(tree_id).iterations)

    def last_iteration(self, tree_id: str) -> MCTSIteration | None:
        iterations = self._audit(tree_id).iterations
        return iterations[-1] if iterations else None

    def expansions(self, tree_id: str) -> list[ResearchExpansion]:
        return list(self._audit(tree_id).expansions)

    def expansions_for_node(self, tree_id: str, node_id: str) -> list[ResearchExpansion]:
        return [e for e in self._audit(tree_id).expansions if e.node_id == node_id]

    def failure_count(self, tree_id: str, node_id: str) -> int:
        """Number of failed attempts on a node that count against its retry budget."""

        return sum(
            1
            for e in self._audit(tree_id).expansions
            if e.node_id == node_id and e.error_kind in RETRYABLE_KINDS
        )

    def drain_pending(self, tree_id: str) -> tuple[list[MCTSIteration], list[ResearchExpansion]]:
        audit = self._audit(tree_id)
        iterations, expansions = audit.pending_iterations, audit.pending_expansions
        audit.pending_iterations, audit.pending_expansions = [], []
        return iterations, expansions

    def requeue(
        self,
        tree_id: str,
        iterations: list[MCTSIteration],
        expansions: list[ResearchExpansion],
    ) -> None:
        """Put records from a failed batch back in front of the pending queue."""

        audit = self._audit(tree_id)
        audit.pending_iterations[:0] = iterations
        audit.pending_expansions[:0] = expansions

    def load(
        self,
        tree_id: str,
        iterations: list[MCTSIteration],
        expansions: list[ResearchExpansion],
    ) -> None:
        """Replace a tree's history with imported records (not re-queued for persistence)."""

        ordered = sorted(iterations, key=lambda it: it.iteration_number)
        numbers = [it.iteration_number for it in ordered]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"iteration numbers for tree {tree_id} must run 1..n without gaps")
        self._trees[tree_id] = _TreeAudit(iterations=ordered, expansions=list(expansions))

    def _audit(self, tree_id: str) -> _TreeAudit:
        return self._trees.setdefault(tree_id, _TreeAudit())
