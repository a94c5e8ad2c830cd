"""Tree scheduler: drives MCTS iterations for one or more trees.

One run of a tree loops select → spawn expansion task until a stop condition holds. Each task
does the slow collaborator calls without the tree lock, then takes the lock for attach,
backpropagation, iteration recording and the artifact hand-off, so iteration numbers follow the
order in which iterations actually complete.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from researchtree.audit import AuditLog
from researchtree.config import EngineConfig
from researchtree.core.concurrency import TaskPool
from researchtree.errors import PersistenceFailed
from researchtree.events import ContentType, EventRecorder, EventType, TreeEvent
from researchtree.literature import InMemoryLiterature
from researchtree.logging import get_logger, log_exception, node_context, set_iteration, tree_context
from researchtree.mcts.backprop import Backpropagator
from researchtree.mcts.expander import Expander, ExpansionOutcome
from researchtree.mcts.scorer import Scorer
from researchtree.mcts.selector import Selector
from researchtree.models.node import ResearchTreeNode
from researchtree.models.tree import ResearchTree, TreeStatus
from researchtree.store.tree_store import TreeStore
from researchtree.sync.batch import ArtifactBatch
from researchtree.sync.sinks import ArtifactSink, NullArtifactSink

logger = get_logger(__name__)


@dataclass
class _RunState:
    tree_id: str
    pool: TaskPool
    seq: int = 0
    started: int = 0
    consecutive_failures: int = 0
    stop_status: TreeStatus | None = None
    stop_reason: str = ""
    errors: list[str] = field(default_factory=list)

    def stop(self, status: TreeStatus, reason: str) -> None:
        # First stop reason wins.
        if self.stop_status is None:
            self.stop_status = status
            self.stop_reason = reason


class TreeScheduler:
    """Runs trees to completion, bounding in-flight expansions per tree."""

    def __init__(
        self,
        store: TreeStore,
        audit: AuditLog,
        expander: Expander,
        *,
        config: EngineConfig,
        selector: Selector | None = None,
        backpropagator: Backpropagator | None = None,
        sink: ArtifactSink | None = None,
        recorder: EventRecorder | None = None,
        library: InMemoryLiterature | None = None,
    ) -> None:
        scorer = Scorer(store)
        self._store = store
        self._audit = audit
        self._expander = expander
        self._config = config
        self._selector = selector or Selector(store, scorer)
        self._backprop = backpropagator or Backpropagator(store, scorer)
        self._sink = sink or NullArtifactSink()
        self._recorder = recorder
        self._library = library
        self._cancel_events: dict[str, asyncio.Event] = {}

    def cancel(self, tree_id: str) -> None:
        """Ask a running tree to stop. In-flight expansions finish and are kept."""

        self._cancel_events.setdefault(tree_id, asyncio.Event()).set()
        logger.info("Tree cancellation requested", extra={"tree_id": tree_id})

    async def run_many(self, tree_ids: list[str]) -> list[ResearchTree]:
        """Run several trees concurrently; results follow the order of `tree_ids`."""

        return list(await asyncio.gather(*(self.run(tid) for tid in tree_ids)))

    async def run(self, tree_id: str) -> ResearchTree:
        """Grow a tree until a stop condition holds.

        Engine failures never escape: they end the run with the tree `paused`. A paused tree can
        be run again and continues from its stored state.

        Raises:
            TreeNotFound: `tree_id` is unknown.
        """

        self._store.get_tree(tree_id)
        cancel_event = self._cancel_events.setdefault(tree_id, asyncio.Event())
        cancel_event.clear()
        state = _RunState(tree_id=tree_id, pool=TaskPool(self._config.max_concurrent_expansions))

        with tree_context(tree_id=tree_id):
            tree = self._store.set_tree_status(tree_id, TreeStatus.BUILDING)
            logger.info(
                "Tree run started",
                extra={"tree_id": tree_id, "nodes": tree.total_nodes, "max_nodes": tree.params.max_nodes},
            )
            self._emit(
                state,
                EventType.SYSTEM,
                ContentType.TREE_STARTED,
                {"title": tree.title},
                metadata={"nodes": tree.total_nodes, "max_nodes": tree.params.max_nodes},
            )
            try:
                await self._loop(state, cancel_event)
            except Exception:
                log_exception(logger, "Scheduler loop failed", tree_id=tree_id)
                state.stop(TreeStatus.PAUSED, "unexpected error")
            await state.pool.wait_all()
            return await self._finish(state)

    async def _loop(self, state: _RunState, cancel_event: asyncio.Event) -> None:
        tree_id = state.tree_id
        pool = state.pool
        while not self._should_stop(state, cancel_event):
            await pool.admit()
            if self._should_stop(state, cancel_event):
                pool.cancel_admission()
                break

            tree = self._store.get_tree(tree_id)
            remaining = tree.params.max_nodes - tree.total_nodes
            if pool.active_count >= remaining:
                # Every remaining slot is already being filled by an in-flight expansion.
                pool.cancel_admission()
                await pool.wait_any()
                continue

            async with self._store.lock(tree_id):
                node = self._selector.select(tree_id)

            if node is None:
                pool.cancel_admission()
                if pool.active_count == 0:
                    state.stop(TreeStatus.COMPLETED, "nothing selectable")
                    break
                await pool.wait_any()
                continue

            state.started += 1
            self._emit(
                state,
                EventType.MCTS,
                ContentType.NODE_SELECTED,
                {"node_id": node.id, "topic": node.topic},
                metadata={"depth": node.depth, "visits": node.visits},
            )
            pool.spawn(self._iterate(state, node))

    def _should_stop(self, state: _RunState, cancel_event: asyncio.Event) -> bool:
        if state.stop_status is not None:
            return True
        if cancel_event.is_set():
            state.stop(TreeStatus.PAUSED, "cancelled")
            return True

        tree = self._store.get_tree(state.tree_id)
        cfg = self._config
        if tree.total_nodes >= tree.params.max_nodes:
            state.stop(TreeStatus.COMPLETED, "max_nodes reached")
        elif cfg.target_average_depth is not None and tree.average_depth >= cfg.target_average_depth:
            state.stop(TreeStatus.COMPLETED, "target average depth reached")
        elif cfg.max_iterations is not None and state.started >= cfg.max_iterations:
            state.stop(TreeStatus.COMPLETED, "max_iterations reached")
        return state.stop_status is not None

    async def _iterate(self, state: _RunState, node: ResearchTreeNode) -> None:
        tree_id = state.tree_id
        started = time.perf_counter()
        try:
            with node_context(node.id):
                outcome = await self._expander.generate(tree_id, node)
                async with self._store.lock(tree_id):
                    self._apply(state, node, outcome, started)
                    await self._persist(state)
        except Exception as e:
            log_exception(logger, "Iteration failed", tree_id=tree_id, node_id=node.id)
            state.errors.append(f"{node.id}: {e}")
            self._emit(
                state,
                EventType.ERROR,
                ContentType.ITERATION_ERROR,
                {"node_id": node.id, "error": str(e)},
            )
            self._expander.release(tree_id, node.id)
            state.stop(TreeStatus.PAUSED, "unexpected error")

    def _apply(self, state: _RunState, node: ResearchTreeNode, outcome: ExpansionOutcome, started: float) -> None:
        """Attach, backpropagate and record one iteration. Caller holds the tree lock."""

        tree_id = state.tree_id
        child = self._expander.attach(tree_id, node.id, outcome)
        expansion = outcome.expansion
        self._emit(
            state,
            EventType.MCTS,
            ContentType.EXPANSION_RECORDED,
            {"node_id": node.id, "selected_topic": expansion.selected_topic, "error_kind": expansion.error_kind},
        )

        reward = 0.0
        if child is not None:
            reward = outcome.reward
            updated = self._backprop.propagate(tree_id, child.id, reward)
            if self._library is not None:
                self._library.remember(outcome.candidates)
            self._emit(
                state,
                EventType.MCTS,
                ContentType.CHILD_ATTACHED,
                {"parent_id": node.id, "child_id": child.id, "topic": child.topic},
                metadata={"reward": reward, "depth": child.depth, "updated": len(updated)},
            )

        iteration = self._audit.record_iteration(
            tree_id,
            selected_node_id=node.id,
            expanded_node_id=child.id if child is not None else None,
            simulation_result=reward,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        set_iteration(str(iteration.iteration_number))
        self._emit(
            state,
            EventType.MCTS,
            ContentType.ITERATION_RECORDED,
            {"iteration_number": iteration.iteration_number, "expanded_node_id": iteration.expanded_node_id},
            metadata={"simulation_result": reward, "duration_ms": round(iteration.duration_ms, 1)},
        )
        logger.info(
            "Iteration recorded",
            extra={
                "tree_id": tree_id,
                "iteration": iteration.iteration_number,
                "selected": node.id,
                "expanded": iteration.expanded_node_id,
                "reward": reward,
            },
        )

        if child is not None:
            state.consecutive_failures = 0
            return
        state.consecutive_failures += 1
        if state.consecutive_failures >= self._config.max_consecutive_failures:
            logger.warning(
                "Consecutive failure budget exhausted",
                extra={"tree_id": tree_id, "failures": state.consecutive_failures},
            )
            state.stop(TreeStatus.PAUSED, "consecutive failures")

    async def _persist(self, state: _RunState, *, force: bool = False) -> bool:
        """Hand pending records to the sink. Caller holds the tree lock.

        On failure the records are queued again for the next batch and the run is paused.
        """

        tree_id = state.tree_id
        iterations, expansions = self._audit.drain_pending(tree_id)
        nodes = self._store.drain_dirty(tree_id)
        batch = ArtifactBatch(
            tree_id=tree_id,
            tree=self._store.get_tree(tree_id),
            nodes=nodes,
            iterations=iterations,
            expansions=expansions,
        )
        if batch.is_empty and not force:
            return True
        try:
            await self._sink.write(batch)
        except PersistenceFailed as e:
            self._store.mark_dirty(tree_id, [n.id for n in nodes])
            self._audit.requeue(tree_id, iterations, expansions)
            logger.error("Artifact write failed", extra={"tree_id": tree_id, "error": str(e)})
            self._emit(state, EventType.ERROR, ContentType.PERSISTENCE_FAILED, {"error": str(e)})
            state.stop(TreeStatus.PAUSED, "persistence failed")
            return False
        except Exception:
            self._store.mark_dirty(tree_id, [n.id for n in nodes])
            self._audit.requeue(tree_id, iterations, expansions)
            raise
        return True

    async def _finish(self, state: _RunState) -> ResearchTree:
        tree_id = state.tree_id
        state.stop(TreeStatus.COMPLETED, "finished")
        status = state.stop_status or TreeStatus.COMPLETED
        async with self._store.lock(tree_id):
            self._store.set_tree_status(tree_id, status)
            try:
                persisted = await self._persist(state, force=True)
            except Exception:
                log_exception(logger, "Final artifact write failed", tree_id=tree_id)
                persisted = False
            if not persisted and status != TreeStatus.PAUSED:
                status = TreeStatus.PAUSED
                self._store.set_tree_status(tree_id, status)

        tree = self._store.get_tree(tree_id)
        logger.info(
            "Tree run finished",
            extra={
                "tree_id": tree_id,
                "status": status.value,
                "reason": state.stop_reason,
                "nodes": tree.total_nodes,
                "iterations": state.started,
            },
        )
        self._emit(
            state,
            EventType.SYSTEM,
            ContentType.TREE_STOPPED,
            {"status": status.value, "reason": state.stop_reason, "errors": state.errors},
            metadata={"nodes": tree.total_nodes, "average_depth": round(tree.average_depth, 3)},
        )
        return tree

    def _emit(
        self,
        state: _RunState,
        event_type: EventType,
        content_type: ContentType,
        data: str | dict | list | None = None,
        *,
        metadata: dict[str, str | int | float | bool | None] | None = None,
    ) -> TreeEvent | None:
        if self._recorder is None:
            return None
        state.seq += 1
        ev = TreeEvent(
            tree_id=state.tree_id,
            seq=state.seq,
            event_type=event_type,
            content_type=content_type,
            data=data,
            metadata=dict(metadata or {}),
        )
        self._recorder.append(ev)
        return ev
