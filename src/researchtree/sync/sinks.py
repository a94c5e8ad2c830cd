"""Artifact sinks.

Sinks hand batches to a versioned artifact store. Merging concurrent batches is the store's
job; sinks only translate a batch into writes and report failure as `PersistenceFailed`.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import redis

from researchtree.errors import PersistenceFailed
from researchtree.logging import get_logger
from researchtree.models.audit import MCTSIteration, ResearchExpansion
from researchtree.models.node import ResearchTreeNode
from researchtree.models.tree import ResearchTree
from researchtree.sync.batch import ArtifactBatch, TreeExport
from researchtree.utils.ids import node_sort_key

logger = get_logger(__name__)


class ArtifactSink(Protocol):
    async def write(self, batch: ArtifactBatch) -> None:
        """Persist a batch.

        Raises:
            PersistenceFailed: The batch was not stored.
        """


class NullArtifactSink:
    """Accepts and discards every batch."""

    async def write(self, batch: ArtifactBatch) -> None:
        return None


@dataclass
class FileArtifactSink:
    """Append-only JSONL sink, one file per tree under `root`."""

    root: Path

    def __post_init__(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, tree_id: str) -> Path:
        return self.root / f"{tree_id}.jsonl"

    async def write(self, batch: ArtifactBatch) -> None:
        line = json.dumps(batch.model_dump(mode="json"), ensure_ascii=False)
        try:
            await asyncio.to_thread(self._append, self.path_for(batch.tree_id), line)
        except OSError as e:
            raise PersistenceFailed(f"failed to append batch for tree {batch.tree_id}: {e}") from e

    @staticmethod
    def _append(path: Path, line: str) -> None:
        with path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


@dataclass
class RedisArtifactSink:
    """Sink storing each entity kind as a Redis hash keyed by record id.

    HSET on the id makes a batch an id-union into the stored set. Each accepted batch bumps the
    tree's version counter inside the same MULTI/EXEC transaction.
    """

    redis_url: str
    key_prefix: str
    ttl_seconds: int | None = None
    _client: redis.Redis = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)

    def _key(self, tree_id: str, part: str) -> str:
        return f"{self.key_prefix}:tree:{tree_id}:{part}"

    async def write(self, batch: ArtifactBatch) -> None:
        try:
            version = await asyncio.to_thread(self._write_sync, batch)
        except redis.RedisError as e:
            raise PersistenceFailed(f"redis write failed for tree {batch.tree_id}: {e}") from e
        logger.debug("Batch stored", extra={"tree_id": batch.tree_id, "version": version})

    def _write_sync(self, batch: ArtifactBatch) -> int:
        tid = batch.tree_id
        pipe = self._client.pipeline(transaction=True)
        pipe.set(self._key(tid, "tree"), batch.tree.model_dump_json())
        for part, records in (
            ("nodes", batch.nodes),
            ("iterations", batch.iterations),
            ("expansions", batch.expansions),
        ):
            if records:
                pipe.hset(self._key(tid, part), mapping={r.id: r.model_dump_json() for r in records})
        pipe.incr(self._key(tid, "version"))
        if self.ttl_seconds:
            for part in ("tree", "nodes", "iterations", "expansions", "version"):
                pipe.expire(self._key(tid, part), self.ttl_seconds)
        results = pipe.execute()
        return int(results[-1 - (5 if self.ttl_seconds else 0)])

    def version(self, tree_id: str) -> int:
        raw = self._client.get(self._key(tree_id, "version"))
        return int(raw) if raw else 0

    def load(self, tree_id: str) -> TreeExport | None:
        """Read a tree back from Redis."""

        raw_tree = self._client.get(self._key(tree_id, "tree"))
        if raw_tree is None:
            return None
        nodes = [ResearchTreeNode.model_validate_json(v) for v in self._client.hvals(self._key(tree_id, "nodes"))]
        iterations = [
            MCTSIteration.model_validate_json(v) for v in self._client.hvals(self._key(tree_id, "iterations"))
        ]
        expansions = [
            ResearchExpansion.model_validate_json(v) for v in self._client.hvals(self._key(tree_id, "expansions"))
        ]
        return TreeExport(
            tree=ResearchTree.model_validate_json(raw_tree),
            nodes=sorted(nodes, key=lambda n: node_sort_key(n.id)),
            iterations=sorted(iterations, key=lambda it: it.iteration_number),
            expansions=expansions,
        )
