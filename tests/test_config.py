"""Tests for settings and engine config."""

from __future__ import annotations

from pathlib import Path

import pytest

from researchtree.config import EngineConfig, Settings, load_settings


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """It should read RESEARCHTREE_* variables."""

    monkeypatch.setenv("RESEARCHTREE_MAX_NODES", "7")
    monkeypatch.setenv("RESEARCHTREE_MAX_CONCURRENT_EXPANSIONS", "2")
    monkeypatch.setenv("RESEARCHTREE_TARGET_AVERAGE_DEPTH", "1.5")

    settings = Settings()
    config = EngineConfig.from_settings(settings)

    assert settings.max_nodes == 7
    assert config.max_concurrent_expansions == 2
    assert config.target_average_depth == 1.5
    assert config.expansion_retry_budget == 3


def test_load_settings_uses_env_file_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """It should load the file named by RESEARCHTREE_ENV_FILE."""

    env_file = tmp_path / "custom.env"
    env_file.write_text("RESEARCHTREE_OPENAI_MODEL=test-model\nRESEARCHTREE_MAX_DEPTH=3\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("RESEARCHTREE_ENV_FILE", str(env_file))

    settings = load_settings()

    assert settings.openai_model == "test-model"
    assert settings.max_depth == 3


def test_engine_config_defaults_and_validation() -> None:
    """It should default to the documented values and reject invalid ones."""

    config = EngineConfig()
    assert config.default_quality_score == 0.5
    assert config.max_consecutive_failures == 5

    with pytest.raises(ValueError):
        EngineConfig(max_concurrent_expansions=0)
    with pytest.raises(ValueError):
        EngineConfig(default_quality_score=1.5)
