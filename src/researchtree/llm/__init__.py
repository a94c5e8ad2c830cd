"""LLM access."""

from __future__ import annotations

from researchtree.llm.client import ChatMessage, LLMClient

__all__ = ["ChatMessage", "LLMClient"]
