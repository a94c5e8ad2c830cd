"""Fake collaborators shared by the tests."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Iterable

from researchtree.errors import PersistenceFailed
from researchtree.models.generation import GenerationResult, PromptSpec
from researchtree.models.literature import LiteratureCandidate
from researchtree.sync.batch import ArtifactBatch


class FakeCompletion:
    """Completion service returning scripted results.

    Script items are consumed in call order; an exception item is raised instead of returned.
    Once the script runs out, unique sub-topics are generated from the call counter.
    """

    def __init__(
        self,
        script: Iterable[GenerationResult | Exception] = (),
        *,
        scores: tuple[float, float, float] = (0.8, 0.6, 0.7),
        delay_s: float = 0.0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self._script = deque(script)
        self._scores = scores
        self._delay_s = delay_s
        self._gate = gate
        self.calls: list[PromptSpec] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, spec: PromptSpec) -> GenerationResult:
        self.calls.append(spec)
        n = len(self.calls)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._gate is not None:
                await self._gate.wait()
            await asyncio.sleep(self._delay_s)
            if self._script:
                item = self._script.popleft()
                if isinstance(item, Exception):
                    raise item
                return item
            relevance, novelty, feasibility = self._scores
            return GenerationResult(
                topics=[f"{spec.topic} / angle {n}.{i}" for i in range(1, spec.candidate_count + 1)],
                question=f"What does angle {n} add?",
                summary=f"Summary for call {n}",
                search_query=f"query {n}",
                relevance=relevance,
                novelty=novelty,
                feasibility=feasibility,
            )
        finally:
            self.in_flight -= 1


class FakeSearch:
    """Literature search returning the same candidates for every query."""

    def __init__(self, candidates: Iterable[LiteratureCandidate] = (), *, error: Exception | None = None) -> None:
        self.candidates = list(candidates)
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, *, limit: int) -> list[LiteratureCandidate]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.candidates[:limit]


class MemorySink:
    """Artifact sink keeping every batch and an id-union view of the stored records."""

    def __init__(self) -> None:
        self.batches: list[ArtifactBatch] = []
        self.nodes: dict[str, object] = {}
        self.iterations: dict[str, object] = {}
        self.expansions: dict[str, object] = {}

    async def write(self, batch: ArtifactBatch) -> None:
        await asyncio.sleep(0)
        self.batches.append(batch)
        self.nodes.update((n.id, n) for n in batch.nodes)
        self.iterations.update((it.id, it) for it in batch.iterations)
        self.expansions.update((e.id, e) for e in batch.expansions)


class FailingSink(MemorySink):
    """Rejects the first `failures` batches, then behaves like MemorySink."""

    def __init__(self, failures: int = 1_000_000) -> None:
        super().__init__()
        self.remaining_failures = failures
        self.rejected = 0

    async def write(self, batch: ArtifactBatch) -> None:
        if self.remaining_failures > 0:
            self.remaining_failures -= 1
            self.rejected += 1
            raise PersistenceFailed("sink unavailable")
        await super().write(batch)


def candidate(paper_id: str, title: str = "A paper", rank: int = 1) -> LiteratureCandidate:
    return LiteratureCandidate(id=paper_id, title=title, rank=rank)
