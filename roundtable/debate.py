"""Debate session: screen the topic, plan, then orchestrate the turns."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from config.config_loader import AppConfig, PromptsConfig
from roundtable.executor import TurnExecutor
from roundtable.models import Agent, DebatePlan, DebateTranscript, MessageEvent
from roundtable.orchestrator import CancellationToken, DebateOrchestrator, OrchestratorSettings
from roundtable.planner import Planner, build_planner
from roundtable.preflight import screen_topic
from roundtable.providers.registry import ProviderRegistry, build_registry
from roundtable.validator import build_validator

logger = logging.getLogger(__name__)


@dataclass
class DebateServices:
    """Everything a debate needs, wired once per process or request."""

    registry: ProviderRegistry
    prompts: PromptsConfig
    planner: Planner
    orchestrator: DebateOrchestrator
    preflight: bool = False


def build_services(
    config: AppConfig,
    registry: ProviderRegistry | None = None,
    planner: str | None = None,
    validation: str | None = None,
    turn_delay_sec: float | None = None,
) -> DebateServices:
    """Wire registry, planner, executor, validator and orchestrator from config.

    Keyword arguments override the matching settings.yaml values.
    """
    registry = registry or build_registry(config)
    settings = OrchestratorSettings.from_config(config)
    if turn_delay_sec is not None:
        settings.turn_delay_sec = turn_delay_sec
    executor = TurnExecutor(registry, config.prompts, config.debate)
    validator = build_validator(validation or config.debate.validation, registry, config.prompts)
    return DebateServices(
        registry=registry,
        prompts=config.prompts,
        planner=build_planner(planner or config.defaults.planner, config.debate, registry, config.prompts),
        orchestrator=DebateOrchestrator(executor, validator, settings),
        preflight=config.defaults.preflight,
    )


async def plan_debate(services: DebateServices, topic: str, agents: list[Agent], mode: str = "quick") -> DebatePlan:
    """Screen (if enabled) and plan. Raises PlanningError before any turn runs."""
    if services.preflight:
        await screen_topic(services.registry, services.prompts, topic)
    return await services.planner.plan(topic, agents, mode)


async def run_debate(
    services: DebateServices,
    topic: str,
    agents: list[Agent],
    mode: str = "quick",
    cancel: CancellationToken | None = None,
    on_event: Callable[[MessageEvent], None] | None = None,
    on_plan: Callable[[DebatePlan], None] | None = None,
) -> DebateTranscript:
    """Run a whole debate.

    Args:
        services: Wired engine components.
        topic: The user's question.
        agents: The roster to choose debaters from.
        mode: "quick" (one round) or "deep" (rebuttal rounds).
        cancel: Optional token the caller may set at any time.
        on_event: Optional callback receiving every message mutation.
        on_plan: Optional callback invoked once the plan is ready.

    Returns:
        The transcript, possibly shorter than planned.

    Raises:
        PlanningError: If screening or planning fails.
    """
    plan = await plan_debate(services, topic, agents, mode)
    if on_plan:
        on_plan(plan)
    return await services.orchestrator.run(plan, agents, cancel=cancel, on_event=on_event)
