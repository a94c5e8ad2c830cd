"""Literature collaborators.

Nodes only ever hold literature ids. Search turns a query into candidates, the store turns ids
back into display records, and :class:`LiteratureResolver` does that for a node.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

import httpx

from researchtree.errors import SearchFailed
from researchtree.logging import get_logger
from researchtree.models.literature import LiteratureCandidate, LiteratureRecord
from researchtree.models.node import ResearchTreeNode

logger = get_logger(__name__)

_TRANSIENT_STATUS = {429, 500, 502, 503, 504}


class LiteratureSearch(Protocol):
    """Literature search interface."""

    async def search(self, query: str, *, limit: int) -> list[LiteratureCandidate]:
        """Search literature. May return an empty list.

        Raises:
            SearchFailed: The search backend failed.
        """


class LiteratureStore(Protocol):
    """Resolves literature ids into display records."""

    def get_by_ids(self, ids: Iterable[str]) -> list[LiteratureRecord]:
        """Records in request order; unknown ids are skipped."""


@dataclass(frozen=True)
class SemanticScholarSearch:
    """Semantic Scholar Graph API paper search.

    Notes:
        - The API key is optional (`RESEARCHTREE_S2_API_KEY`); anonymous requests are rate
          limited harder and are more likely to see 429s, which are retried with backoff.
    """

    api_key: str | None = None
    base_url: str = "https://api.semanticscholar.org/graph/v1"
    timeout_s: float = 30.0
    max_retries: int = 3
    retry_backoff_s: float = 1.0
    retry_max_backoff_s: float = 8.0
    fields: str = "paperId,title,year,authors,venue,abstract,url"
    transport: httpx.AsyncBaseTransport | None = None

    async def search(self, query: str, *, limit: int) -> list[LiteratureCandidate]:
        if not query.strip() or limit <= 0:
            return []

        url = f"{self.base_url.rstrip('/')}/paper/search"
        params = {"query": query, "limit": limit, "fields": self.fields}
        headers = {"x-api-key": self.api_key} if self.api_key else {}

        last_err: Exception | None = None
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s),
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            for attempt in range(self.max_retries + 1):
                started = time.monotonic()
                try:
                    resp = await client.get(url, params=params, headers=headers)
                    if resp.status_code in _TRANSIENT_STATUS:
                        raise httpx.HTTPStatusError(
                            f"semantic scholar transient status={resp.status_code}",
                            request=resp.request,
                            response=resp,
                        )
                    resp.raise_for_status()
                    data = resp.json()
                    if not isinstance(data, dict):
                        raise SearchFailed("semantic scholar response not a JSON object")
                    candidates = _parse_s2_results(data.get("data") or [])
                    logger.info(
                        "Semantic Scholar search ok",
                        extra={
                            "query_len": len(query),
                            "limit": limit,
                            "attempt": attempt,
                            "result_count": len(candidates),
                            "latency_ms": int((time.monotonic() - started) * 1000),
                        },
                    )
                    return candidates[:limit]
                except httpx.HTTPStatusError as e:
                    last_err = e
                    if e.response.status_code not in _TRANSIENT_STATUS:
                        break
                except (httpx.TransportError, ValueError) as e:
                    last_err = e

                if attempt < self.max_retries:
                    backoff = min(self.retry_backoff_s * (2**attempt), self.retry_max_backoff_s)
                    logger.warning(
                        "Semantic Scholar search failed, retrying",
                        extra={"attempt": attempt + 1, "backoff_s": backoff, "error": str(last_err)},
                    )
                    await asyncio.sleep(backoff)

        raise SearchFailed(f"semantic scholar search failed: {last_err}") from last_err


def _parse_s2_results(items: list[Any]) -> list[LiteratureCandidate]:
    out: list[LiteratureCandidate] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        paper_id = item.get("paperId")
        title = item.get("title")
        if not paper_id or not title:
            continue
        authors = [a.get("name") for a in item.get("authors") or [] if isinstance(a, dict) and a.get("name")]
        out.append(
            LiteratureCandidate(
                id=str(paper_id),
                title=str(title),
                authors=authors,
                year=item.get("year") if isinstance(item.get("year"), int) else None,
                venue=item.get("venue") or None,
                abstract=item.get("abstract") or None,
                url=item.get("url") or None,
                rank=len(out) + 1,
            )
        )
    return out


class InMemoryLiterature:
    """Literature library held in memory.

    Serves as both search backend (token overlap over title/abstract) and store. Useful for
    hosts that already have the user's collection loaded, and for tests.
    """

    def __init__(self, records: Iterable[LiteratureRecord] = ()) -> None:
        self._records: dict[str, LiteratureRecord] = {}
        for r in records:
            self.add(r)

    def add(self, record: LiteratureRecord) -> LiteratureRecord:
        self._records[record.id] = record
        return record

    def remember(self, candidates: Iterable[LiteratureCandidate]) -> None:
        """Keep search hits from another backend so their ids resolve later."""

        for c in candidates:
            if c.id not in self._records:
                self.add(LiteratureRecord(**c.model_dump(exclude={"rank"})))

    def count(self) -> int:
        return len(self._records)

    def get_by_ids(self, ids: Iterable[str]) -> list[LiteratureRecord]:
        out: list[LiteratureRecord] = []
        for rid in ids:
            rec = self._records.get(rid)
            if rec is not None:
                out.append(rec)
        return out

    async def search(self, query: str, *, limit: int) -> list[LiteratureCandidate]:
        tokens = _tokenize(query)
        if not tokens or limit <= 0:
            return []

        scored: list[tuple[int, LiteratureRecord]] = []
        for rec in self._records.values():
            score = _score(tokens, f"{rec.title} {rec.abstract or ''}")
            if score > 0:
                scored.append((score, rec))
        scored.sort(key=lambda x: x[0], reverse=True)
        return [
            LiteratureCandidate(**rec.model_dump(), rank=i)
            for i, (_score_value, rec) in enumerate(scored[:limit], start=1)
        ]


@dataclass(frozen=True)
class NodeLiterature:
    primary: LiteratureRecord | None
    related: list[LiteratureRecord]


@dataclass(frozen=True)
class LiteratureResolver:
    """Resolve a node's literature references into display records."""

    store: LiteratureStore

    def resolve(self, node: ResearchTreeNode) -> NodeLiterature:
        primary = None
        if node.primary_literature_id:
            found = self.store.get_by_ids([node.primary_literature_id])
            primary = found[0] if found else None
        related = self.store.get_by_ids(node.related_literature_ids)
        return NodeLiterature(primary=primary, related=related)


_WORD_RE = re.compile(r"[A-Za-z0-9_\u4e00-\u9fff]+")


def _tokenize(text: str) -> set[str]:
    return {t.lower() for t in _WORD_RE.findall(text) if len(t) >= 2}


def _score(tokens: set[str], text: str) -> int:
    hay = text.lower()
    return sum(1 for t in tokens if t in hay)
