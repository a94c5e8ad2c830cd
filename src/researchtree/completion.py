"""Completion service interface and the OpenAI-backed adapter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from researchtree.errors import GenerationFailed
from researchtree.llm.client import ChatMessage, LLMClient
from researchtree.logging import get_logger
from researchtree.models.generation import GenerationResult, PromptSpec
from researchtree.prompts import EXPANSION_SYSTEM_PROMPT
from researchtree.utils.tags import extract_json_object

logger = get_logger(__name__)


class CompletionService(Protocol):
    """Generates expansion content for a node."""

    async def generate(self, spec: PromptSpec) -> GenerationResult:
        """Generate topics, question, summary and search query.

        Raises:
            GenerationFailed: The call failed or returned nothing usable.
        """


@dataclass(frozen=True)
class LLMCompletionService:
    """Completion service that asks a chat model for a JSON expansion."""

    llm: LLMClient
    temperature: float = 0.7

    async def generate(self, spec: PromptSpec) -> GenerationResult:
        messages = [
            ChatMessage(role="system", content=EXPANSION_SYSTEM_PROMPT),
            ChatMessage(role="user", content=self._build_prompt(spec)),
        ]
        raw = await self.llm.complete(messages, temperature=self.temperature, json_mode=True)
        return parse_generation(raw)

    @staticmethod
    def _build_prompt(spec: PromptSpec) -> str:
        lines = [f"Current direction: {spec.topic}"]
        if spec.question:
            lines.append(f"Guiding question: {spec.question}")
        if spec.summary:
            lines.append(f"Context: {spec.summary}")
        if spec.path_topics:
            lines.append("Path from the root: " + " > ".join(spec.path_topics))
        lines.append(f"Depth: {spec.depth}")
        if spec.sibling_topics:
            lines.append("Already explored from here (do not repeat):")
            lines.extend(f"- {t}" for t in spec.sibling_topics)
        lines.append("")
        lines.append(f"Propose {spec.candidate_count} sub-topics.")
        return "\n".join(lines)


def parse_generation(raw: str) -> GenerationResult:
    """Parse model output into a GenerationResult.

    Raises:
        GenerationFailed: No JSON object, or it does not validate.
    """

    data = extract_json_object(raw)
    if data is None:
        logger.warning("Failed to parse expansion output. Raw=%s", raw[:300])
        raise GenerationFailed("completion output contained no JSON object")

    topics = data.get("topics")
    if isinstance(topics, str):
        data["topics"] = [topics]
    elif not isinstance(topics, list):
        data["topics"] = []
    for key in ("question", "summary", "search_query"):
        value = data.get(key)
        data[key] = value.strip() if isinstance(value, str) else ""
    for key in ("relevance", "novelty", "feasibility"):
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            data[key] = min(max(float(value), 0.0), 1.0)
        else:
            data[key] = None
    try:
        return GenerationResult.model_validate(data)
    except ValidationError as e:
        logger.warning("Failed to validate expansion JSON. Raw=%s", raw[:300])
        raise GenerationFailed(f"completion output did not validate: {e.error_count()} errors") from e
