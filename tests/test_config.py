"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, DebateConfig, ModelConfig, PromptsConfig, load_config


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "mode": "deep",
            "planner": "model",
            "default_provider": "claude",
            "output_dir": "./output",
            "agents_dir": "./agents",
        },
        "debate": {
            "max_attempts": 5,
            "repetition_threshold": 0.4,
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-sonnet-4-20250514",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 1024,
            }
        },
        "prompts": {
            "system": "You are {name}. {persona}\n{verbosity}\n{turn_framing}",
            "turns": {"initial": "Argue for {target_position}."},
            "verbosity": {"concise": "Be brief."},
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.mode == "deep"
    assert config.defaults.planner == "model"
    assert config.defaults.preflight is False
    assert config.defaults.utility_provider is None
    assert isinstance(config.defaults.output_dir, Path)
    assert isinstance(config.defaults.agents_dir, Path)


def test_load_config_debate_overrides_and_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.debate.max_attempts == 5
    assert config.debate.repetition_threshold == 0.4
    # untouched keys keep their defaults
    assert config.debate.repetition_window == DebateConfig().repetition_window
    assert config.debate.summary_temperature == 0.2


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].model == "claude-sonnet-4-20250514"
    assert config.models["claude"].base_url is None


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{turn_framing}" in config.prompts.system
    assert config.prompts.turns["initial"].startswith("Argue")
    assert config.prompts.director == ""


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    config = load_config(minimal_settings)
    assert "claude" in config.available_providers


def test_load_config_no_available_providers_without_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_CLAUDE_KEY", raising=False)
    config = load_config(minimal_settings)
    assert "claude" not in config.available_providers


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_shipped_settings_have_every_prompt(app_config):
    prompts = app_config.prompts
    for kind in ("initial", "response", "counter", "summary"):
        assert kind in prompts.turns
    for name in ("stance_retry", "synthesis_retry", "validate", "validate_synthesis", "director", "safety", "quality"):
        assert getattr(prompts, name), name


def test_shipped_templates_format_cleanly(app_config):
    prompts = app_config.prompts
    validate = prompts.validate.format(target_position="Python", content="text")
    assert '{"isValid"' in validate
    director = prompts.director.format(
        topic="T", question_type="GENERAL", guidance="G", agents="A", max_agents=3, rounds=1, word_cap=100,
    )
    assert '"plan"' in director


def test_shipped_debate_defaults(app_config):
    assert app_config.debate.max_attempts == 3
    assert app_config.debate.repetition_threshold == 0.35
    assert app_config.debate.repetition_min_round == 3
