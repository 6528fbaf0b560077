"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    system: str
    turns: dict[str, str] = field(default_factory=dict)
    verbosity: dict[str, str] = field(default_factory=dict)
    stance_retry: str = ""
    synthesis_retry: str = ""
    validate: str = ""
    validate_synthesis: str = ""
    director: str = ""
    safety: str = ""
    quality: str = ""


@dataclass
class DebateConfig:
    max_attempts: int = 3
    backoff_sec: float = 0.0
    repetition_threshold: float = 0.35
    repetition_window: int = 4
    repetition_min_round: int = 3
    stance_word_cap: int = 100
    summary_temperature: float = 0.2
    debate_temperature: float = 0.9
    quick_rounds: int = 1
    deep_rounds: int = 2
    max_agents: int = 3
    turn_delay_sec: float = 0.6
    validation: str = "model"  # "model" or "rules"


@dataclass
class DefaultsConfig:
    mode: str
    planner: str               # "template" or "model"
    default_provider: str
    output_dir: Path
    agents_dir: Path
    preflight: bool = False
    utility_provider: str | None = None


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    debate: DebateConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _load_debate(raw: dict | None) -> DebateConfig:
    raw = raw or {}
    base = DebateConfig()
    return DebateConfig(
        max_attempts=int(raw.get("max_attempts", base.max_attempts)),
        backoff_sec=float(raw.get("backoff_sec", base.backoff_sec)),
        repetition_threshold=float(raw.get("repetition_threshold", base.repetition_threshold)),
        repetition_window=int(raw.get("repetition_window", base.repetition_window)),
        repetition_min_round=int(raw.get("repetition_min_round", base.repetition_min_round)),
        stance_word_cap=int(raw.get("stance_word_cap", base.stance_word_cap)),
        summary_temperature=float(raw.get("summary_temperature", base.summary_temperature)),
        debate_temperature=float(raw.get("debate_temperature", base.debate_temperature)),
        quick_rounds=int(raw.get("quick_rounds", base.quick_rounds)),
        deep_rounds=int(raw.get("deep_rounds", base.deep_rounds)),
        max_agents=int(raw.get("max_agents", base.max_agents)),
        turn_delay_sec=float(raw.get("turn_delay_sec", base.turn_delay_sec)),
        validation=str(raw.get("validation", base.validation)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        mode=str(defaults_raw.get("mode", "quick")),
        planner=str(defaults_raw.get("planner", "template")),
        default_provider=str(defaults_raw["default_provider"]),
        output_dir=Path(defaults_raw["output_dir"]),
        agents_dir=Path(defaults_raw["agents_dir"]),
        preflight=bool(defaults_raw.get("preflight", False)),
        utility_provider=defaults_raw.get("utility_provider"),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        turns={k: str(v) for k, v in prompts_raw.get("turns", {}).items()},
        verbosity={k: str(v) for k, v in prompts_raw.get("verbosity", {}).items()},
        stance_retry=prompts_raw.get("stance_retry", ""),
        synthesis_retry=prompts_raw.get("synthesis_retry", ""),
        validate=prompts_raw.get("validate", ""),
        validate_synthesis=prompts_raw.get("validate_synthesis", ""),
        director=prompts_raw.get("director", ""),
        safety=prompts_raw.get("safety", ""),
        quality=prompts_raw.get("quality", ""),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        debate=_load_debate(raw.get("debate")),
        models=models,
        prompts=prompts,
        available_providers=available_providers,
    )
