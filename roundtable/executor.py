"""Turn execution: build one agent's prompt and stream its reply."""

import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field

from config.config_loader import DebateConfig, PromptsConfig
from roundtable.models import Agent, Message, Phase, StreamItem, TurnKind
from roundtable.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


@dataclass
class TurnRequest:
    topic: str
    agent: Agent
    instruction: str
    history: Sequence[Message]
    turn_kind: TurnKind
    target_position: str | None = None
    round: int | None = None
    phase: Phase | None = None
    previous_agent_stance: str | None = None
    previous_agent_name: str | None = None
    options: list[str] = field(default_factory=list)


def format_transcript(topic: str, history: Sequence[Message]) -> str:
    """Speaker-labelled transcript, oldest first, starting with the question."""
    lines = [f"User: {topic}"]
    for msg in history:
        speaker = msg.agent_name or ("User" if msg.role == "user" else "Agent")
        lines.append(f"{speaker}: {msg.content}")
    return "\n\n".join(lines)


class TurnExecutor:
    """Streams a single agent turn from the agent's provider."""

    def __init__(self, registry: ProviderRegistry, prompts: PromptsConfig, config: DebateConfig) -> None:
        self._registry = registry
        self._prompts = prompts
        self._config = config

    def temperature_for(self, request: TurnRequest) -> float:
        if request.turn_kind is TurnKind.SUMMARY:
            return self._config.summary_temperature
        return max(request.agent.temperature, self._config.debate_temperature)

    def build_messages(self, request: TurnRequest) -> list[dict[str, str]]:
        agent = request.agent
        previous_context = ""
        if request.previous_agent_name and request.previous_agent_stance:
            previous_context = (
                f"{request.previous_agent_name} just argued for {request.previous_agent_stance}."
            )
        framing = self._prompts.turns.get(request.turn_kind.value, "").format(
            topic=request.topic,
            target_position=request.target_position or "",
            previous_context=previous_context,
            round=request.round or 1,
            word_cap=self._config.stance_word_cap,
            options=" vs ".join(request.options),
        )
        system = self._prompts.system.format(
            name=agent.name,
            persona=agent.persona or "You are a helpful assistant.",
            verbosity=self._prompts.verbosity.get(agent.verbosity.value, ""),
            turn_framing=framing.strip(),
        )
        user = (
            f"{format_transcript(request.topic, request.history)}\n\n"
            f"{request.instruction}\n\n"
            f"(Reply to the conversation above as {agent.name})"
        )
        return [
            {"role": "system", "content": system.strip()},
            {"role": "user", "content": user},
        ]

    async def execute(self, request: TurnRequest) -> AsyncIterator[StreamItem]:
        """Yield ContentChunk items followed by at most one UsageReport.

        Raises:
            TransportError: If the provider fails, stalls or is not configured.
        """
        provider, model = self._registry.resolve(request.agent)
        temperature = self.temperature_for(request)
        logger.debug(
            "Turn %s for %s via %s (model=%s, temperature=%.2f)",
            request.turn_kind.value, request.agent.name, provider.name(), model or provider.model_string(), temperature,
        )
        async for item in provider.stream(self.build_messages(request), temperature=temperature, model=model):
            yield item
