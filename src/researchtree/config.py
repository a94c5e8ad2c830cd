"""Application configuration.

Configuration is loaded from environment variables. For local development, you can provide a
`.env` file and set `RESEARCHTREE_ENV_FILE` to point to it.

The engine itself never reads settings: the scheduler and expander receive an explicit
:class:`EngineConfig` built from :class:`Settings` (or constructed directly by the host).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Research tree settings.

    All fields are environment-configurable. Prefix is `RESEARCHTREE_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="RESEARCHTREE_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    # LLM
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_timeout_s: float = Field(default=120.0)

    # Literature search
    s2_api_key: str | None = Field(default=None)
    s2_api_base_url: str = Field(default="https://api.semanticscholar.org/graph/v1")
    s2_timeout_s: float = Field(default=30.0, ge=1.0, le=300.0)
    s2_max_retries: int = Field(default=3, ge=0, le=10)
    s2_retry_backoff_s: float = Field(default=1.0, ge=0.0, le=30.0)
    s2_retry_max_backoff_s: float = Field(default=8.0, ge=0.0, le=120.0)

    # Redis (optional)
    redis_enabled: bool = Field(default=False)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="researchtree")

    # Tree defaults
    exploration_weight: float = Field(default=1.414, gt=0.0)
    max_depth: int = Field(default=5, ge=1, le=50)
    max_nodes: int = Field(default=50, ge=1, le=10000)
    max_children_per_node: int = Field(default=3, ge=1, le=50)

    # Engine
    expansion_retry_budget: int = Field(default=3, ge=1, le=20)
    expansion_timeout_s: float = Field(default=60.0, gt=0.0, le=600.0)
    search_timeout_s: float = Field(default=30.0, gt=0.0, le=600.0)
    max_concurrent_expansions: int = Field(default=3, ge=1, le=64)
    max_consecutive_failures: int = Field(default=5, ge=1, le=100)
    target_average_depth: float | None = Field(default=None, gt=0.0)
    max_iterations: int | None = Field(default=None, ge=1)
    candidate_topics: int = Field(default=3, ge=1, le=10)
    literature_limit: int = Field(default=5, ge=0, le=50)
    default_quality_score: float = Field(default=0.5, ge=0.0, le=1.0)

    # Artifacts
    artifacts_dir: Path = Field(default=Path("artifacts"))


@dataclass(frozen=True)
class EngineConfig:
    """Tunables injected into the scheduler and expander.

    Attributes:
        expansion_retry_budget: Failed expansion attempts a node may accumulate before it
            becomes terminal.
        expansion_timeout_s: Timeout for one completion call.
        search_timeout_s: Timeout for one literature search call.
        max_concurrent_expansions: In-flight expansions allowed per tree.
        max_consecutive_failures: Consecutive failed iterations before the tree pauses.
        target_average_depth: Stop once the tree's average depth reaches this value.
        max_iterations: Stop after this many iterations in one run.
        candidate_topics: Number of candidate topics requested per expansion.
        literature_limit: Maximum literature candidates kept per expansion.
        default_quality_score: Substitute for quality scores the generator omits.
    """

    expansion_retry_budget: int = 3
    expansion_timeout_s: float = 60.0
    search_timeout_s: float = 30.0
    max_concurrent_expansions: int = 3
    max_consecutive_failures: int = 5
    target_average_depth: float | None = None
    max_iterations: int | None = None
    candidate_topics: int = 3
    literature_limit: int = 5
    default_quality_score: float = 0.5

    def __post_init__(self) -> None:
        if self.expansion_retry_budget < 1:
            raise ValueError("expansion_retry_budget must be >= 1")
        if self.max_concurrent_expansions < 1:
            raise ValueError("max_concurrent_expansions must be >= 1")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        if not 0.0 <= self.default_quality_score <= 1.0:
            raise ValueError("default_quality_score must be within [0, 1]")

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        """Build engine config from settings."""

        return cls(
            expansion_retry_budget=settings.expansion_retry_budget,
            expansion_timeout_s=settings.expansion_timeout_s,
            search_timeout_s=settings.search_timeout_s,
            max_concurrent_expansions=settings.max_concurrent_expansions,
            max_consecutive_failures=settings.max_consecutive_failures,
            target_average_depth=settings.target_average_depth,
            max_iterations=settings.max_iterations,
            candidate_topics=settings.candidate_topics,
            literature_limit=settings.literature_limit,
            default_quality_score=settings.default_quality_score,
        )


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("RESEARCHTREE_ENV_FILE")
    if env_file_override:
        env_path = Path(env_file_override)
        return Settings(_env_file=env_path)

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
