"""Tests for completion output parsing and prompt building."""

from __future__ import annotations

import pytest

from researchtree.completion import LLMCompletionService, parse_generation
from researchtree.errors import GenerationFailed
from researchtree.models.generation import PromptSpec
from researchtree.utils.tags import extract_json_object


def test_parse_generation_plain_json() -> None:
    """It should parse a well-formed JSON response."""

    raw = (
        '{"topics": ["Sparse attention", "  ", "Linear attention"], "question": " Which scales? ",'
        ' "summary": "Efficient transformers", "search_query": "efficient attention",'
        ' "relevance": 0.9, "novelty": 0.4, "feasibility": 0.8}'
    )

    result = parse_generation(raw)

    assert result.topics == ["Sparse attention", "Linear attention"]
    assert result.question == "Which scales?"
    assert result.search_query == "efficient attention"
    assert (result.relevance, result.novelty, result.feasibility) == (0.9, 0.4, 0.8)


def test_parse_generation_fenced_and_clamped() -> None:
    """It should read fenced JSON, clamp out-of-range scores and drop non-numeric ones."""

    raw = 'Sure!\n```json\n{"topics": "Only one", "relevance": 7, "novelty": "high", "feasibility": -1}\n```'

    result = parse_generation(raw)

    assert result.topics == ["Only one"]
    assert result.relevance == 1.0
    assert result.novelty is None
    assert result.feasibility == 0.0
    assert result.question == ""


def test_parse_generation_without_json_fails() -> None:
    """It should raise GenerationFailed when no JSON object is present."""

    with pytest.raises(GenerationFailed):
        parse_generation("I cannot help with that.")


def test_extract_json_object_scans_prose() -> None:
    """It should find the first JSON object embedded in prose."""

    assert extract_json_object('Here you go: {"a": 1} and {"b": 2}') == {"a": 1}
    assert extract_json_object("[1, 2, 3]") is None
    assert extract_json_object("") is None


def test_build_prompt_lists_existing_children() -> None:
    """It should mention the path, the depth and the sub-topics to avoid."""

    spec = PromptSpec(
        topic="Retrieval",
        question="How to retrieve?",
        path_topics=["RAG", "Retrieval"],
        sibling_topics=["Dense retrieval"],
        depth=1,
        candidate_count=2,
    )

    prompt = LLMCompletionService._build_prompt(spec)

    assert "Current direction: Retrieval" in prompt
    assert "RAG > Retrieval" in prompt
    assert "- Dense retrieval" in prompt
    assert "Propose 2 sub-topics." in prompt
