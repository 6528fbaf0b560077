"""Debate planning: pick agents, assign sides, lay out rounds and the synthesis.

Two planners share one contract, ``plan(topic, agents, mode) -> DebatePlan``:

- ``TemplatePlanner`` builds the plan deterministically from the question
  analysis.
- ``ModelPlanner`` asks a "debate director" model for a JSON plan and parses
  it strictly.

Both run the result through ``validate_plan`` so the orchestrator can rely on
the summary step being present exactly once, and last.
"""

import json
import logging
import re
from abc import ABC, abstractmethod

from config.config_loader import DebateConfig, PromptsConfig
from roundtable.analysis import IMPLIED_ROLES, QuestionAnalysis, analyze_question
from roundtable.models import Agent, DebatePlan, Phase, PlanStep, StepType, TurnKind
from roundtable.providers.base import TransportError, strip_code_fence
from roundtable.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

MODES = ("quick", "deep")
_FALLBACK_OPTIONS = ["In favor", "Against"]
_SUMMARY_WORD_CAP = 150
_DIRECTOR_TEMPERATURE = 0.7


class PlanningError(Exception):
    """Raised when a debate cannot be planned."""


class PlanParseError(PlanningError):
    """Raised when a plan is unparseable or has an invalid shape."""


def turn_kind_for(round_number: int, is_summary: bool) -> TurnKind:
    if is_summary:
        return TurnKind.SUMMARY
    if round_number <= 1:
        return TurnKind.INITIAL
    if round_number == 2:
        return TurnKind.RESPONSE
    return TurnKind.COUNTER


def phase_for(round_number: int) -> Phase:
    return Phase.OPENING if round_number <= 1 else Phase.CONFRONTATION


def _rounds_for(mode: str, config: DebateConfig) -> int:
    if mode not in MODES:
        raise PlanningError(f"Unknown debate mode '{mode}', expected one of {MODES}")
    return config.quick_rounds if mode == "quick" else config.deep_rounds


def _check_inputs(topic: str, agents: list[Agent]) -> None:
    if not topic or not topic.strip():
        raise PlanningError("Cannot plan a debate without a topic")
    if not agents:
        raise PlanningError("Cannot plan a debate without at least one agent")


def select_agents(analysis: QuestionAnalysis, topic: str, agents: list[Agent], max_agents: int) -> list[Agent]:
    """Pick the most relevant agents, keeping roster order among the chosen.

    Relevance is the number of topic words (and role keywords for the
    question type) found in the agent's name and persona.
    """
    count = min(len(agents), max(2, max_agents))
    terms = {w for w in re.findall(r"\w+", topic.lower()) if len(w) > 3}
    if analysis.type in IMPLIED_ROLES:
        terms.update(IMPLIED_ROLES[analysis.type][1])

    def score(agent: Agent) -> int:
        text = f"{agent.name} {agent.persona}".lower()
        return sum(1 for term in terms if term in text)

    ranked = sorted(agents, key=score, reverse=True)
    chosen = {a.id for a in ranked[:count]}
    return [a for a in agents if a.id in chosen]


def adaptable_agent_for_role(analysis: QuestionAnalysis, selected: list[Agent]) -> tuple[Agent, str] | None:
    """Return (agent, role) when the question calls for a role nobody covers."""
    if analysis.type not in IMPLIED_ROLES:
        return None
    role, stems = IMPLIED_ROLES[analysis.type]
    for agent in selected:
        text = f"{agent.name} {agent.persona}".lower()
        if any(stem in text for stem in stems):
            return None
    best = max(selected, key=lambda a: a.temperature)
    return best, role


def validate_plan(steps: list[PlanStep], agents: list[Agent]) -> None:
    """Check structural invariants of a plan.

    Raises:
        PlanParseError: Missing or misplaced summary step, missing stances,
            an agent switching sides, or bad rebuttal indexes.
        PlanningError: A step names an agent that is not in the roster.
    """
    if not steps:
        raise PlanParseError("Plan is empty")
    summaries = [i for i, s in enumerate(steps) if s.type is StepType.SUMMARY]
    if not summaries:
        raise PlanParseError("Plan has no summary step")
    if len(summaries) > 1:
        raise PlanParseError(f"Plan has {len(summaries)} summary steps, expected exactly one")
    if summaries[0] != len(steps) - 1:
        raise PlanParseError("Summary step must be the last step of the plan")

    roster = {a.id for a in agents}
    positions: dict[str, str] = {}
    for index, step in enumerate(steps):
        if step.agent_id not in roster:
            raise PlanningError(f"Plan step {index} references unknown agent '{step.agent_id}'")
        if step.round < 1:
            raise PlanParseError(f"Plan step {index} has invalid round {step.round}")
        if step.responding_to_step_index is not None and not 0 <= step.responding_to_step_index < index:
            raise PlanParseError(
                f"Plan step {index} responds to step {step.responding_to_step_index}, which does not precede it"
            )
        if step.is_summary:
            continue
        if not step.target_position:
            raise PlanParseError(f"Discussion step {index} has no target position")
        previous = positions.setdefault(step.agent_id, step.target_position)
        if previous != step.target_position:
            raise PlanParseError(
                f"Agent {step.agent_id} switched position from '{previous}' to '{step.target_position}'"
            )


class Planner(ABC):
    """Produces an ordered plan for a topic and a roster."""

    def __init__(self, config: DebateConfig) -> None:
        self._config = config

    @abstractmethod
    async def plan(self, topic: str, agents: list[Agent], mode: str = "quick") -> DebatePlan:
        ...


class TemplatePlanner(Planner):
    """Deterministic planner: alternating sides, fixed round structure."""

    async def plan(self, topic: str, agents: list[Agent], mode: str = "quick") -> DebatePlan:
        _check_inputs(topic, agents)
        rounds = _rounds_for(mode, self._config)
        analysis = analyze_question(topic)
        options = analysis.options or list(_FALLBACK_OPTIONS)
        selected = select_agents(analysis, topic, agents, self._config.max_agents)

        positions = {a.id: options[i % 2] for i, a in enumerate(selected)}
        role_prefix: dict[str, str] = {}
        adopted = adaptable_agent_for_role(analysis, selected)
        if adopted is not None:
            agent, role = adopted
            role_prefix[agent.id] = f"Adopt the perspective of a {role} for this debate. "
            logger.info("No agent covers the %s role, %s will adopt it", role, agent.name)

        cap = self._config.stance_word_cap
        steps: list[PlanStep] = []
        by_round: dict[int, list[int]] = {}
        for round_number in range(1, rounds + 1):
            previous_round = by_round.get(round_number - 1, [])
            for i, agent in enumerate(selected):
                position = positions[agent.id]
                target = self._opponent_step(steps, previous_round, selected, i, position)
                if round_number == 1:
                    body = f"Make your opening case for {position}. Be specific and opinionated."
                elif target is None:
                    body = f"Strengthen your case for {position} with an argument you have not made yet."
                else:
                    opponent = steps[target]
                    name = next(a.name for a in selected if a.id == opponent.agent_id)
                    if round_number == 2:
                        body = (f"Attack {name}'s argument for {opponent.target_position}. "
                                f"Defend {position} with a specific counterpoint.")
                    else:
                        body = (f"Bring a new argument for {position} that has not been made yet, "
                                f"and answer {name}'s latest point.")
                steps.append(
                    PlanStep(
                        agent_id=agent.id,
                        instruction=f"{role_prefix.get(agent.id, '')}{body} Keep it under {cap} words.",
                        type=StepType.DISCUSSION,
                        round=round_number,
                        turn_kind=turn_kind_for(round_number, False),
                        phase=phase_for(round_number),
                        target_position=position,
                        responding_to_step_index=None if round_number == 1 else target,
                    )
                )
                by_round.setdefault(round_number, []).append(len(steps) - 1)

        summary_instruction = (
            f"Provide a neutral synthesis: 'Choose {options[0]} if: ... Choose {options[1]} if: ...'. "
            f"Do not declare a winner. {analysis.guidance} Keep it under {_SUMMARY_WORD_CAP} words."
        )
        if analysis.disclaimer:
            summary_instruction += f" End with this note: {analysis.disclaimer}"
        synthesizer = min(selected, key=lambda a: a.temperature)
        steps.append(
            PlanStep(
                agent_id=synthesizer.id,
                instruction=summary_instruction,
                type=StepType.SUMMARY,
                round=rounds + 1,
                turn_kind=TurnKind.SUMMARY,
                phase=Phase.SYNTHESIS,
            )
        )

        validate_plan(steps, agents)
        logger.info(
            "Planned %d steps for %d agents (%s mode, %s question)",
            len(steps), len(selected), mode, analysis.type,
        )
        return DebatePlan(topic=topic, steps=steps, options=options, mode=mode, question_type=analysis.type)

    @staticmethod
    def _opponent_step(
        steps: list[PlanStep],
        previous_round: list[int],
        selected: list[Agent],
        index: int,
        position: str,
    ) -> int | None:
        """Index of the previous-round step this agent should rebut."""
        if not previous_round:
            return None
        nearest = previous_round[(index + 1) % len(previous_round)]
        if steps[nearest].target_position != position:
            return nearest
        for candidate in previous_round:
            if steps[candidate].target_position != position:
                return candidate
        return None


class ModelPlanner(Planner):
    """Asks the utility model for a JSON plan and parses it strictly."""

    def __init__(self, config: DebateConfig, registry: ProviderRegistry, prompts: PromptsConfig) -> None:
        super().__init__(config)
        self._registry = registry
        self._prompts = prompts

    def _director_prompt(self, topic: str, analysis: QuestionAnalysis, agents: list[Agent], rounds: int) -> str:
        roster = "\n".join(
            f"{i}. {a.name} (ID: {a.id})\n   Persona: {a.persona[:100]}"
            for i, a in enumerate(agents, start=1)
        )
        return self._prompts.director.format(
            topic=topic,
            question_type=analysis.type,
            guidance=analysis.guidance,
            agents=roster,
            max_agents=min(len(agents), self._config.max_agents),
            rounds=rounds,
            word_cap=self._config.stance_word_cap,
        )

    async def plan(self, topic: str, agents: list[Agent], mode: str = "quick") -> DebatePlan:
        _check_inputs(topic, agents)
        rounds = _rounds_for(mode, self._config)
        analysis = analyze_question(topic)
        provider = self._registry.utility_provider()

        messages = [
            {"role": "system", "content": self._director_prompt(topic, analysis, agents, rounds)},
            {"role": "user", "content": "Generate the debate plan."},
        ]
        try:
            response = await provider.generate(messages, temperature=_DIRECTOR_TEMPERATURE, json_mode=True)
        except TransportError as exc:
            raise PlanningError(f"Planner call failed: {exc}") from exc

        options, steps = parse_plan(response.content, fallback_options=analysis.options)
        validate_plan(steps, agents)

        speakers = {s.agent_id for s in steps if not s.is_summary}
        expected = rounds * len(speakers)
        discussion = len(steps) - 1
        if discussion != expected:
            logger.warning(
                "Director planned %d discussion turns, expected %d (%d rounds x %d agents)",
                discussion, expected, rounds, len(speakers),
            )
        logger.info("Planned %d steps via %s (%s mode)", len(steps), provider.name(), mode)
        return DebatePlan(topic=topic, steps=steps, options=options, mode=mode, question_type=analysis.type)


def _optional_int(value, field_name: str, index: int) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise PlanParseError(f"Step {index}: {field_name} must be an integer")
    return value


def parse_plan(content: str, fallback_options: list[str] | None = None) -> tuple[list[str], list[PlanStep]]:
    """Parse a director response into (options, steps). Never guesses.

    Raises:
        PlanParseError: If the JSON or its shape is not what was asked for.
    """
    try:
        data = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"Plan is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("plan"), list):
        raise PlanParseError("Plan must be a JSON object with a 'plan' array")

    options = data.get("options")
    if not (isinstance(options, list) and len(options) == 2 and all(isinstance(o, str) and o for o in options)):
        if not fallback_options:
            raise PlanParseError("Options must be an array of exactly 2 strings")
        options = list(fallback_options)

    steps: list[PlanStep] = []
    for index, raw in enumerate(data["plan"]):
        if not isinstance(raw, dict):
            raise PlanParseError(f"Step {index} is not an object")
        agent_id = raw.get("agentId")
        instruction = raw.get("instruction")
        if not isinstance(agent_id, str) or not agent_id:
            raise PlanParseError(f"Step {index} has no agentId")
        if not isinstance(instruction, str) or not instruction:
            raise PlanParseError(f"Step {index} has no instruction")
        try:
            step_type = StepType(raw.get("type", "discussion"))
        except ValueError as exc:
            raise PlanParseError(f"Step {index} has unknown type {raw.get('type')!r}") from exc
        round_number = _optional_int(raw.get("round"), "round", index)
        if round_number is None:
            raise PlanParseError(f"Step {index} has no round")
        phase = raw.get("phase")
        try:
            phase = Phase(phase.upper()) if isinstance(phase, str) else None
        except ValueError as exc:
            raise PlanParseError(f"Step {index} has unknown phase {raw.get('phase')!r}") from exc
        target = raw.get("targetPosition")
        if target is not None and not isinstance(target, str):
            raise PlanParseError(f"Step {index}: targetPosition must be a string or null")
        is_summary = step_type is StepType.SUMMARY
        steps.append(
            PlanStep(
                agent_id=agent_id,
                instruction=instruction,
                type=step_type,
                round=round_number,
                turn_kind=turn_kind_for(round_number, is_summary),
                phase=phase or (Phase.SYNTHESIS if is_summary else phase_for(round_number)),
                target_position=None if is_summary else target,
                responding_to_step_index=_optional_int(raw.get("respondingToStepIndex"), "respondingToStepIndex", index),
            )
        )
    return options, steps


def build_planner(
    strategy: str,
    config: DebateConfig,
    registry: ProviderRegistry | None = None,
    prompts: PromptsConfig | None = None,
) -> Planner:
    if strategy == "template":
        return TemplatePlanner(config)
    if strategy == "model":
        if registry is None or prompts is None:
            raise ValueError("The model planner needs a provider registry and prompts")
        return ModelPlanner(config, registry, prompts)
    raise ValueError(f"Unknown planner strategy '{strategy}'")
