"""Stance and synthesis checks used to decide whether a turn is retried.

Validators only classify content, they never rewrite it. A validator that
cannot reach a verdict raises ValidationError; the orchestrator treats that
as a pass.
"""

import json
import logging
import re
from abc import ABC, abstractmethod

from config.config_loader import PromptsConfig
from roundtable.models import ValidationResult
from roundtable.providers.base import TransportError, strip_code_fence
from roundtable.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when a validator cannot classify content."""


class Validator(ABC):
    @abstractmethod
    async def validate_position(self, content: str, target_position: str) -> ValidationResult:
        """Does ``content`` argue for ``target_position`` without conceding?"""
        ...

    @abstractmethod
    async def validate_synthesis(self, content: str) -> ValidationResult:
        """Does ``content`` give conditional criteria rather than a winner?"""
        ...


class ModelValidator(Validator):
    """Classification via a JSON-mode call to the utility provider."""

    def __init__(self, registry: ProviderRegistry, prompts: PromptsConfig) -> None:
        self._registry = registry
        self._prompts = prompts

    async def _classify(self, prompt: str) -> ValidationResult:
        provider = self._registry.utility_provider()
        messages = [
            {"role": "system", "content": prompt},
            {"role": "user", "content": "Classify the text. JSON only."},
        ]
        try:
            response = await provider.generate(messages, temperature=0.0, json_mode=True)
        except TransportError as exc:
            raise ValidationError(f"Validator call failed: {exc}") from exc
        try:
            data = json.loads(strip_code_fence(response.content))
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Validator returned non-JSON content: {response.content[:80]!r}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("isValid"), bool):
            raise ValidationError(f"Validator returned unexpected shape: {data!r}")
        reason = data.get("reason")
        return ValidationResult(is_valid=data["isValid"], reason=str(reason) if reason else None)

    async def validate_position(self, content: str, target_position: str) -> ValidationResult:
        return await self._classify(
            self._prompts.validate.format(target_position=target_position, content=content)
        )

    async def validate_synthesis(self, content: str) -> ValidationResult:
        return await self._classify(self._prompts.validate_synthesis.format(content=content))


_CONCESSIONS = re.compile(
    r"\b(i concede|you'?re right|you are right|i agree with (you|my opponent)|fair point|good point"
    r"|i was wrong|i stand corrected|both (options )?are (equally )?(good|valid)|it really depends)\b",
    re.IGNORECASE,
)
_CRITERIA = re.compile(r"\b(choose|pick|go with|opt for|prefer)\b[^.\n]{0,80}?\bif\b", re.IGNORECASE)
_WINNER = re.compile(
    r"\b(is (clearly |simply |definitely |objectively )?(better|superior|the (clear |obvious )?winner"
    r"|the best (choice|option))|i recommend|the answer is|wins (this|the) debate|clear winner)\b",
    re.IGNORECASE,
)


class RuleValidator(Validator):
    """Phrase-based equivalent of ModelValidator, with no model call."""

    async def validate_position(self, content: str, target_position: str) -> ValidationResult:
        lower = content.lower()
        concession = _CONCESSIONS.search(content)
        if concession:
            return ValidationResult(False, f"Concedes to the other side ('{concession.group(0)}')")
        keywords = [w for w in re.findall(r"\w+", target_position.lower()) if len(w) > 2] or [target_position.lower()]
        if not any(k in lower for k in keywords):
            return ValidationResult(False, f"Never argues for {target_position}")
        return ValidationResult(True)

    async def validate_synthesis(self, content: str) -> ValidationResult:
        winner = _WINNER.search(content)
        if winner:
            return ValidationResult(False, f"Declares a winner ('{winner.group(0)}') instead of giving criteria")
        if len(_CRITERIA.findall(content)) < 2:
            return ValidationResult(False, "Missing 'choose X if / choose Y if' criteria for both options")
        return ValidationResult(True)


def build_validator(kind: str, registry: ProviderRegistry | None = None, prompts: PromptsConfig | None = None) -> Validator:
    if kind == "rules":
        return RuleValidator()
    if kind == "model":
        if registry is None or prompts is None:
            raise ValueError("The model validator needs a provider registry and prompts")
        return ModelValidator(registry, prompts)
    raise ValueError(f"Unknown validation kind '{kind}'")
