"""Tests for literature collaborators."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from researchtree.errors import SearchFailed
from researchtree.literature import InMemoryLiterature, LiteratureResolver, SemanticScholarSearch
from researchtree.models.literature import LiteratureCandidate, LiteratureRecord
from researchtree.models.node import ResearchTreeNode

_S2_PAYLOAD = {
    "total": 3,
    "data": [
        {
            "paperId": "abc",
            "title": "Attention Is All You Need",
            "year": 2017,
            "venue": "NeurIPS",
            "authors": [{"name": "A. Vaswani"}, {"name": ""}],
            "abstract": "Transformers.",
            "url": "https://example.org/abc",
        },
        {"paperId": "no-title"},
        {"paperId": "def", "title": "BERT", "year": "2018"},
    ],
}


def _search(handler, **kw) -> SemanticScholarSearch:
    return SemanticScholarSearch(
        transport=httpx.MockTransport(handler),
        retry_backoff_s=0.0,
        retry_max_backoff_s=0.0,
        **kw,
    )


def test_semantic_scholar_parses_results() -> None:
    """It should map Semantic Scholar papers to ranked candidates and skip incomplete ones."""

    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_S2_PAYLOAD)

    results = asyncio.run(_search(handler, api_key="k").search("transformers", limit=5))

    assert [c.id for c in results] == ["abc", "def"]
    assert [c.rank for c in results] == [1, 2]
    assert results[0].authors == ["A. Vaswani"]
    assert results[1].year is None
    assert seen[0].url.path.endswith("/paper/search")
    assert seen[0].url.params["query"] == "transformers"
    assert seen[0].headers["x-api-key"] == "k"


def test_semantic_scholar_retries_transient_status() -> None:
    """It should retry 429 responses and return the eventual result."""

    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(429, json={"message": "slow down"})
        return httpx.Response(200, json=_S2_PAYLOAD)

    results = asyncio.run(_search(handler, max_retries=3).search("q", limit=1))

    assert calls["n"] == 3
    assert [c.id for c in results] == ["abc"]


def test_semantic_scholar_gives_up_on_client_error() -> None:
    """It should raise SearchFailed without retrying a non-transient status."""

    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(400, json={"error": "bad query"})

    with pytest.raises(SearchFailed):
        asyncio.run(_search(handler, max_retries=3).search("q", limit=1))
    assert calls["n"] == 1


def test_semantic_scholar_blank_query_skips_request() -> None:
    """It should return nothing for a blank query."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert asyncio.run(_search(handler).search("   ", limit=3)) == []


def test_in_memory_search_ranks_by_overlap() -> None:
    """It should rank records by token overlap with the query."""

    library = InMemoryLiterature(
        [
            LiteratureRecord(id="p1", title="Graph neural networks", abstract="message passing on graphs"),
            LiteratureRecord(id="p2", title="Protein folding"),
            LiteratureRecord(id="p3", title="Graph transformers"),
        ]
    )

    results = asyncio.run(library.search("graph message passing", limit=5))

    assert [c.id for c in results] == ["p1", "p3"]
    assert [c.rank for c in results] == [1, 2]


def test_resolver_ignores_unknown_ids() -> None:
    """It should resolve primary and related literature, skipping ids it does not know."""

    library = InMemoryLiterature()
    library.remember([LiteratureCandidate(id="p1", title="One", rank=1), LiteratureCandidate(id="p2", title="Two")])
    node = ResearchTreeNode(
        id="n_0002",
        tree_id="t",
        topic="x",
        primary_literature_id="p1",
        related_literature_ids=["p1", "missing", "p2"],
    )

    refs = LiteratureResolver(library).resolve(node)

    assert refs.primary is not None and refs.primary.title == "One"
    assert [r.id for r in refs.related] == ["p1", "p2"]
    assert library.count() == 2
