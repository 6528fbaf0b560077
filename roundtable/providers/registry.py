"""Explicit provider registry handed to the planner, executor and validator."""

import logging
from dataclasses import dataclass

from config.config_loader import AppConfig
from roundtable.models import Agent
from roundtable.providers.anthropic import AnthropicProvider
from roundtable.providers.base import AIProvider, TransportError
from roundtable.providers.gemini import GeminiProvider
from roundtable.providers.openai_provider import OpenAIProvider
from roundtable.providers.xai import XAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
    "xai": XAIProvider,
}


@dataclass
class ProviderRegistry:
    """Provider instances keyed by name, plus the fallback for bare model strings."""

    providers: dict[str, AIProvider]
    default: str
    utility: str | None = None

    def __post_init__(self) -> None:
        if self.default not in self.providers:
            if not self.providers:
                raise ValueError("ProviderRegistry needs at least one provider")
            fallback = next(iter(self.providers))
            logger.warning("Default provider '%s' unavailable, using '%s'", self.default, fallback)
            self.default = fallback
        if self.utility not in self.providers:
            self.utility = self.default

    def get(self, name: str) -> AIProvider:
        try:
            return self.providers[name]
        except KeyError:
            raise TransportError(name, "Provider not configured or missing API key") from None

    def utility_provider(self) -> AIProvider:
        """Provider used for planning, validation and preflight classification."""
        return self.providers[self.utility]

    def resolve(self, agent: Agent) -> tuple[AIProvider, str | None]:
        """Return (provider, model override) for an agent's model identifier.

        Accepts ``provider:model``, a bare provider name, or a bare model
        string (sent to the default provider). Empty means the default
        provider's own model.
        """
        ident = agent.model.strip()
        if not ident:
            return self.providers[self.default], None
        if ":" in ident:
            provider_name, model = ident.split(":", 1)
            return self.get(provider_name), model or None
        if ident in self.providers:
            return self.providers[ident], None
        return self.providers[self.default], ident


def build_registry(config: AppConfig) -> ProviderRegistry:
    """Instantiate every available provider. Unknown SDKs and failures are skipped."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if cls is None:
            logger.warning("Provider '%s' has unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = cls(model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return ProviderRegistry(
        providers=providers,
        default=config.defaults.default_provider,
        utility=config.defaults.utility_provider,
    )
