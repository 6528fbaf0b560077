"""Safety and debate-quality screening of a topic before planning."""

import json
import logging
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from roundtable.planner import PlanningError
from roundtable.providers.base import TransportError, strip_code_fence
from roundtable.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

CRISIS_MESSAGE = (
    "If you're experiencing thoughts of self-harm or suicide, please reach out for help immediately. "
    "In the US call or text 988; elsewhere see https://findahelpline.com. Your life matters."
)
_DEFAULT_SUGGESTION = (
    "This question doesn't lend itself to meaningful debate. "
    "Try asking about a decision with real stakes or tradeoffs."
)


class TopicRejectedError(PlanningError):
    """Raised when a topic fails the safety or quality screen."""

    def __init__(self, message: str, reason: str | None = None, category: str | None = None) -> None:
        self.reason = reason
        self.category = category
        super().__init__(message)


@dataclass
class SafetyVerdict:
    safe: bool
    reason: str | None = None


@dataclass
class QualityVerdict:
    debatable: bool
    category: str | None = None
    reason: str | None = None
    suggestion: str | None = None


async def _classify(registry: ProviderRegistry, system_prompt: str, topic: str) -> dict | None:
    """Run a JSON classification. Returns None when it cannot be completed."""
    provider = registry.utility_provider()
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": f'Question: "{topic}"'},
    ]
    try:
        response = await provider.generate(messages, temperature=0.0, json_mode=True)
        data = json.loads(strip_code_fence(response.content))
    except (TransportError, json.JSONDecodeError) as exc:
        logger.warning("Topic classification failed, allowing topic: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Topic classification returned %r, allowing topic", data)
        return None
    return data


async def check_safety(registry: ProviderRegistry, prompts: PromptsConfig, topic: str) -> SafetyVerdict:
    data = await _classify(registry, prompts.safety, topic)
    if data is None:
        return SafetyVerdict(safe=True, reason="Safety check error - defaulting to safe")
    return SafetyVerdict(safe=bool(data.get("safe", True)), reason=data.get("reason"))


async def check_quality(registry: ProviderRegistry, prompts: PromptsConfig, topic: str) -> QualityVerdict:
    data = await _classify(registry, prompts.quality, topic)
    if data is None:
        return QualityVerdict(debatable=True, reason="Quality check error - defaulting to allow")
    return QualityVerdict(
        debatable=bool(data.get("debatable", True)),
        category=data.get("category"),
        reason=data.get("reason"),
        suggestion=data.get("suggestion"),
    )


async def screen_topic(registry: ProviderRegistry, prompts: PromptsConfig, topic: str) -> None:
    """Raise TopicRejectedError if the topic is unsafe or not worth debating."""
    safety = await check_safety(registry, prompts, topic)
    if not safety.safe:
        logger.info("Topic rejected as unsafe: %s", safety.reason)
        raise TopicRejectedError(CRISIS_MESSAGE, reason=safety.reason, category="unsafe")

    quality = await check_quality(registry, prompts, topic)
    if not quality.debatable:
        logger.info("Topic rejected as %s: %s", quality.category, quality.reason)
        raise TopicRejectedError(
            quality.suggestion or _DEFAULT_SUGGESTION,
            reason=quality.reason,
            category=quality.category,
        )
