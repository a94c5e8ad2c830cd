"""Expansion phase.

Expansion is split in two so the slow collaborator calls never run under the tree lock:

1. :meth:`Expander.generate` (async, unlocked) asks the completion service for content and the
   literature search for supporting papers, and packages the result as an
   :class:`ExpansionOutcome`.
2. :meth:`Expander.attach` (sync, caller holds the tree lock) records the attempt and either
   attaches the new child or applies the failure policy to the node.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from researchtree.audit import AuditLog
from researchtree.completion import CompletionService
from researchtree.config import EngineConfig
from researchtree.errors import (
    CapacityExceeded,
    CollaboratorError,
    DepthExceeded,
    GenerationFailed,
    GenerationTimeout,
    SearchFailed,
)
from researchtree.literature import LiteratureSearch
from researchtree.logging import get_logger
from researchtree.mcts.scorer import simulation_reward
from researchtree.models.audit import ResearchExpansion
from researchtree.models.generation import GenerationResult, PromptSpec
from researchtree.models.literature import LiteratureCandidate
from researchtree.models.node import NodeDraft, NodeStatus, ResearchTreeNode
from researchtree.store.tree_store import TreeStore
from researchtree.utils.ids import new_record_id

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExpansionOutcome:
    """Result of the unlocked half of an expansion."""

    node_id: str
    expansion: ResearchExpansion
    draft: NodeDraft | None
    reward: float = 0.0
    candidates: tuple[LiteratureCandidate, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.draft is not None


class Expander:
    """Generates and attaches one child per expansion attempt."""

    def __init__(
        self,
        store: TreeStore,
        audit: AuditLog,
        completion: CompletionService,
        search: LiteratureSearch,
        config: EngineConfig,
    ) -> None:
        self._store = store
        self._audit = audit
        self._completion = completion
        self._search = search
        self._config = config

    async def generate(self, tree_id: str, node: ResearchTreeNode) -> ExpansionOutcome:
        """Produce content for a child of `node`. Never raises for collaborator failures."""

        spec = self.prompt_spec(tree_id, node)
        result: GenerationResult | None = None
        selected = ""
        query = ""
        candidates: list[LiteratureCandidate] = []

        try:
            generated = await self._generate(spec)
            result = generated
            selected = _pick_topic(generated.topics, spec.sibling_topics)
            if not selected:
                raise GenerationFailed("no usable candidate topic")
            query = generated.search_query or selected
            candidates = await self._find_literature(query)
        except CollaboratorError as e:
            logger.warning(
                "Expansion attempt failed",
                extra={"tree_id": tree_id, "node_id": node.id, "kind": e.kind, "error": str(e)},
            )
            return ExpansionOutcome(
                node_id=node.id,
                expansion=self._record(tree_id, node.id, result, selected, query, candidates, error=e),
                draft=None,
            )
        else:
            return self._succeeded(tree_id, node, generated, selected, query, candidates)

    def _succeeded(
        self,
        tree_id: str,
        node: ResearchTreeNode,
        result: GenerationResult,
        selected: str,
        query: str,
        candidates: list[LiteratureCandidate],
    ) -> ExpansionOutcome:
        expansion = self._record(tree_id, node.id, result, selected, query, candidates)
        reward = simulation_reward(
            expansion.relevance_score,
            expansion.novelty_score,
            expansion.feasibility_score,
            default=self._config.default_quality_score,
        )
        draft = NodeDraft(
            topic=selected,
            summary=result.summary or None,
            question=result.question or None,
            expansion_reason=f"sub-topic of: {node.topic}",
            primary_literature_id=expansion.selected_literature_id,
            related_literature_ids=expansion.found_literature_ids,
            visits=1,
            win_sum=reward,
        )
        return ExpansionOutcome(
            node_id=node.id,
            expansion=expansion,
            draft=draft,
            reward=reward,
            candidates=tuple(candidates),
        )

    def attach(self, tree_id: str, node_id: str, outcome: ExpansionOutcome) -> ResearchTreeNode | None:
        """Record the attempt and apply it to the tree. Caller holds the tree lock.

        Returns:
            The new child, or None when the attempt failed or the tree rejected the child.
        """

        if outcome.draft is None:
            self._audit.record_expansion(outcome.expansion)
            self._after_failure(tree_id, node_id)
            return None

        try:
            child = self._store.add_child(tree_id, node_id, outcome.draft)
        except (CapacityExceeded, DepthExceeded) as e:
            # Structural rejections do not consume the node's retry budget.
            self._audit.record_expansion(
                outcome.expansion.model_copy(update={"error_kind": e.kind, "error": str(e)})
            )
            if isinstance(e, DepthExceeded):
                self._store.set_status(tree_id, node_id, NodeStatus.TERMINAL)
            else:
                self.release(tree_id, node_id)
            logger.info("Child rejected by tree", extra={"tree_id": tree_id, "node_id": node_id, "kind": e.kind})
            return None

        self._audit.record_expansion(outcome.expansion)
        self._store.set_status(tree_id, node_id, NodeStatus.EXPANDED)
        max_depth = self._store.get_tree(tree_id).params.max_depth
        if child.depth >= max_depth:
            child = self._store.set_status(tree_id, child.id, NodeStatus.TERMINAL)
        logger.info(
            "Child attached",
            extra={"tree_id": tree_id, "parent_id": node_id, "child_id": child.id, "reward": outcome.reward},
        )
        return child

    def release(self, tree_id: str, node_id: str) -> None:
        """Return a node claimed for expansion to a selectable status."""

        node = self._store.get_node(tree_id, node_id)
        if node.status != NodeStatus.EXPANDING:
            return
        self._store.set_status(tree_id, node_id, NodeStatus.EXPANDED if node.children else NodeStatus.UNEXPLORED)

    def prompt_spec(self, tree_id: str, node: ResearchTreeNode) -> PromptSpec:
        path = self._store.get_path(tree_id, node.id)
        siblings = [c.topic for c in self._store.get_children(tree_id, node.id)]
        return PromptSpec(
            topic=node.topic,
            question=node.question,
            summary=node.summary,
            path_topics=[n.topic for n in path],
            sibling_topics=siblings,
            depth=node.depth,
            candidate_count=self._config.candidate_topics,
        )

    async def _generate(self, spec: PromptSpec) -> GenerationResult:
        try:
            return await asyncio.wait_for(self._completion.generate(spec), timeout=self._config.expansion_timeout_s)
        except TimeoutError as e:
            raise GenerationTimeout(f"completion timed out after {self._config.expansion_timeout_s}s") from e
        except CollaboratorError:
            raise
        except Exception as e:
            raise GenerationFailed(f"completion service error: {e}") from e

    async def _find_literature(self, query: str) -> list[LiteratureCandidate]:
        if self._config.literature_limit <= 0:
            return []
        try:
            found = await asyncio.wait_for(
                self._search.search(query, limit=self._config.literature_limit),
                timeout=self._config.search_timeout_s,
            )
        except TimeoutError as e:
            raise SearchFailed(f"literature search timed out after {self._config.search_timeout_s}s") from e
        except CollaboratorError:
            raise
        except Exception as e:
            raise SearchFailed(f"literature search error: {e}") from e
        return list(found)[: self._config.literature_limit]

    def _after_failure(self, tree_id: str, node_id: str) -> None:
        failures = self._audit.failure_count(tree_id, node_id)
        if failures < self._config.expansion_retry_budget:
            self.release(tree_id, node_id)
            return

        node = self._store.get_node(tree_id, node_id)
        if node.children:
            self.release(tree_id, node_id)
            self._store.close_widening(tree_id, node_id)
        else:
            self._store.set_status(tree_id, node_id, NodeStatus.TERMINAL)
        logger.warning(
            "Node retry budget exhausted",
            extra={
                "tree_id": tree_id,
                "node_id": node_id,
                "failures": failures,
                "keeps_subtree": bool(node.children),
            },
        )

    @staticmethod
    def _record(
        tree_id: str,
        node_id: str,
        result: GenerationResult | None,
        selected: str,
        query: str,
        candidates: list[LiteratureCandidate],
        *,
        error: CollaboratorError | None = None,
    ) -> ResearchExpansion:
        found_ids = list(dict.fromkeys(c.id for c in candidates))
        return ResearchExpansion(
            id=new_record_id("exp"),
            tree_id=tree_id,
            node_id=node_id,
            generated_topics=list(result.topics) if result else [],
            selected_topic=selected,
            generated_question=result.question if result else "",
            generated_summary=result.summary if result else "",
            search_query=query,
            found_literature_ids=found_ids,
            selected_literature_id=found_ids[0] if found_ids else None,
            relevance_score=result.relevance if result else None,
            novelty_score=result.novelty if result else None,
            feasibility_score=result.feasibility if result else None,
            error_kind=error.kind if error else None,
            error=str(error) if error else None,
        )


def _pick_topic(topics: list[str], taken: list[str]) -> str:
    """First candidate not already used by an existing child (case-insensitive)."""

    used = {t.strip().lower() for t in taken}
    for topic in topics:
        if topic.strip().lower() not in used:
            return topic.strip()
    return ""
