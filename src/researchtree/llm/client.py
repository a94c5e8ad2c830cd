"""OpenAI-compatible LLM client.

This wraps the async `openai` SDK and provides a minimal interface for chat completions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Literal, Sequence

from openai import AsyncOpenAI, OpenAIError

from researchtree.config import Settings
from researchtree.errors import GenerationFailed
from researchtree.logging import get_logger

logger = get_logger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """A chat message."""

    role: Role
    content: str


class LLMClient:
    """LLM client using the OpenAI-compatible Chat Completions API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        if not settings.openai_api_key:
            raise ValueError(
                "Missing RESEARCHTREE_OPENAI_API_KEY. "
                "Set it in environment variables or a .env file."
            )

        # Retries are owned by the expander's per-node budget.
        self._client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            max_retries=0,
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        json_mode: bool = False,
    ) -> str:
        """Generate a completion.

        Args:
            messages: Chat messages.
            temperature: Sampling temperature.
            json_mode: Ask the server for a JSON object response.

        Returns:
            Assistant message content ("" when the model returned nothing).

        Raises:
            GenerationFailed: The API call failed.
        """

        payload: list[dict[str, str]] = [{"role": m.role, "content": m.content} for m in messages]
        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        started = time.monotonic()
        try:
            resp = await self._client.chat.completions.create(
                model=self._settings.openai_model,
                messages=payload,
                temperature=temperature,
                timeout=self._settings.openai_timeout_s,
                **kwargs,
            )
        except OpenAIError as e:
            raise GenerationFailed(f"completion request failed: {e}") from e

        logger.debug(
            "LLM completion ok",
            extra={
                "model": self._settings.openai_model,
                "latency_ms": int((time.monotonic() - started) * 1000),
                "tokens": resp.usage.total_tokens if resp.usage else None,
            },
        )
        if not resp.choices:
            return ""
        choice = resp.choices[0]
        if not choice.message or choice.message.content is None:
            return ""
        return choice.message.content
