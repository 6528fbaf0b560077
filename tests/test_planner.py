"""Tests for roundtable/planner.py."""

import json
import logging

import pytest

from roundtable.analysis import analyze_question
from roundtable.models import Agent, ModelResponse, Phase, PlanStep, StepType, TurnKind
from roundtable.planner import (
    ModelPlanner,
    PlanningError,
    PlanParseError,
    TemplatePlanner,
    build_planner,
    parse_plan,
    select_agents,
    turn_kind_for,
    validate_plan,
)
from roundtable.providers.base import TransportError


def _step(agent_id, round_number=1, target="X", summary=False, responding=None) -> PlanStep:
    return PlanStep(
        agent_id=agent_id,
        instruction="Go.",
        type=StepType.SUMMARY if summary else StepType.DISCUSSION,
        round=round_number,
        turn_kind=turn_kind_for(round_number, summary),
        target_position=None if summary else target,
        responding_to_step_index=responding,
    )


# ---- TemplatePlanner ----


async def test_quick_plan_three_agents(debate_config, three_agents):
    plan = await TemplatePlanner(debate_config).plan("Python or JavaScript?", three_agents, "quick")

    assert plan.options == ["Python", "JavaScript"]
    assert plan.question_type == "TECHNOLOGY"
    assert len(plan.steps) == 4
    assert [s.type for s in plan.steps] == [StepType.DISCUSSION] * 3 + [StepType.SUMMARY]
    assert [s.target_position for s in plan.steps[:3]] == ["Python", "JavaScript", "Python"]
    assert all(s.turn_kind is TurnKind.INITIAL and s.phase is Phase.OPENING for s in plan.steps[:3])

    summary = plan.steps[-1]
    assert summary.target_position is None
    assert summary.phase is Phase.SYNTHESIS
    assert summary.round == 2
    assert summary.agent_id == "analyst"  # lowest temperature
    assert "Choose Python if" in summary.instruction


async def test_every_discussion_instruction_carries_word_cap(debate_config, three_agents):
    plan = await TemplatePlanner(debate_config).plan("Python or JavaScript?", three_agents, "deep")
    for step in plan.steps[:-1]:
        assert step.instruction.endswith("Keep it under 100 words.")


async def test_deep_plan_rebuttals_reference_opponents(debate_config, three_agents):
    plan = await TemplatePlanner(debate_config).plan("Python or JavaScript?", three_agents, "deep")

    assert len(plan.steps) == 7
    second_round = plan.steps[3:6]
    for offset, step in enumerate(second_round, start=3):
        assert step.round == 2
        assert step.turn_kind is TurnKind.RESPONSE
        assert step.phase is Phase.CONFRONTATION
        target = step.responding_to_step_index
        assert target is not None and target < offset
        assert plan.steps[target].target_position != step.target_position
        assert "Attack" in step.instruction


async def test_agents_keep_their_side_across_rounds(debate_config, three_agents):
    plan = await TemplatePlanner(debate_config).plan("Python or JavaScript?", three_agents, "deep")
    sides: dict[str, set] = {}
    for step in plan.steps[:-1]:
        sides.setdefault(step.agent_id, set()).add(step.target_position)
    assert all(len(s) == 1 for s in sides.values())


async def test_fallback_options_without_or(debate_config, two_agents):
    plan = await TemplatePlanner(debate_config).plan("What makes a good manager?", two_agents)
    assert plan.options == ["In favor", "Against"]


async def test_single_agent_plan(debate_config, three_agents):
    plan = await TemplatePlanner(debate_config).plan("Python or JavaScript?", three_agents[:1], "deep")
    assert [s.agent_id for s in plan.steps] == ["analyst", "analyst", "analyst"]
    assert plan.steps[1].responding_to_step_index is None
    assert "Strengthen your case" in plan.steps[1].instruction


async def test_missing_role_is_adopted_by_most_adaptable(debate_config):
    agents = [
        Agent(id="calm", name="Calm", persona="Quiet and steady.", temperature=0.3),
        Agent(id="wild", name="Wild", persona="Bold and loud.", temperature=1.1),
    ]
    plan = await TemplatePlanner(debate_config).plan("Should I invest my salary in stocks or bonds?", agents)
    wild_step = next(s for s in plan.steps if s.agent_id == "wild")
    assert wild_step.instruction.startswith("Adopt the perspective of a financial analyst")


async def test_unknown_mode_rejected(debate_config, two_agents):
    with pytest.raises(PlanningError):
        await TemplatePlanner(debate_config).plan("A or B?", two_agents, "marathon")


async def test_empty_topic_and_roster_rejected(debate_config, two_agents):
    with pytest.raises(PlanningError):
        await TemplatePlanner(debate_config).plan("   ", two_agents)
    with pytest.raises(PlanningError):
        await TemplatePlanner(debate_config).plan("A or B?", [])


def test_select_agents_caps_and_keeps_roster_order(three_agents):
    analysis = analyze_question("Python or JavaScript for software?")
    chosen = select_agents(analysis, "Python or JavaScript for software?", three_agents, max_agents=2)
    assert len(chosen) == 2
    assert "engineer" in [a.id for a in chosen]
    assert chosen == [a for a in three_agents if a in chosen]


def test_turn_kind_for():
    assert turn_kind_for(1, False) is TurnKind.INITIAL
    assert turn_kind_for(2, False) is TurnKind.RESPONSE
    assert turn_kind_for(5, False) is TurnKind.COUNTER
    assert turn_kind_for(2, True) is TurnKind.SUMMARY


def test_parse_plan_turn_kind_follows_round():
    """A back-reference names the rebutted turn but the round decides the kind."""
    data = {
        "options": ["Python", "JavaScript"],
        "plan": [
            {"round": 1, "agentId": "analyst", "targetPosition": "Python", "instruction": "Open.",
             "type": "discussion"},
            {"round": 2, "agentId": "engineer", "targetPosition": "JavaScript", "instruction": "Rebut.",
             "type": "discussion"},
            {"round": 3, "agentId": "analyst", "targetPosition": "Python", "instruction": "Counter.",
             "type": "discussion", "respondingToStepIndex": 1},
            {"round": 4, "agentId": "engineer", "instruction": "Synthesize.", "type": "summary"},
        ],
    }
    _, steps = parse_plan(json.dumps(data))
    assert [s.turn_kind for s in steps] == [
        TurnKind.INITIAL, TurnKind.RESPONSE, TurnKind.COUNTER, TurnKind.SUMMARY,
    ]
    assert steps[2].responding_to_step_index == 1


# ---- validate_plan ----


def test_validate_plan_accepts_well_formed(three_agents):
    validate_plan([_step("analyst"), _step("engineer", target="Y"), _step("analyst", 2, summary=True)], three_agents)


@pytest.mark.parametrize(
    "steps",
    [
        [],
        [_step("analyst")],
        [_step("analyst", summary=True), _step("engineer")],
        [_step("analyst"), _step("engineer", summary=True), _step("skeptic", summary=True)],
        [_step("analyst", target=None), _step("engineer", summary=True)],
        [_step("analyst", target="X"), _step("analyst", 2, target="Y"), _step("engineer", summary=True)],
        [_step("analyst", responding=0), _step("engineer", summary=True)],
        [_step("analyst", round_number=0), _step("engineer", summary=True)],
    ],
    ids=["empty", "no-summary", "summary-first", "two-summaries", "no-stance", "side-switch",
         "self-reference", "round-zero"],
)
def test_validate_plan_rejects_malformed(steps, three_agents):
    with pytest.raises(PlanParseError):
        validate_plan(steps, three_agents)


def test_validate_plan_unknown_agent(three_agents):
    with pytest.raises(PlanningError) as exc_info:
        validate_plan([_step("ghost"), _step("analyst", summary=True)], three_agents)
    assert not isinstance(exc_info.value, PlanParseError)
    assert "ghost" in str(exc_info.value)


# ---- parse_plan ----


_DIRECTOR_PLAN = {
    "options": ["Python", "JavaScript"],
    "plan": [
        {"round": 1, "phase": "OPENING", "agentId": "analyst", "targetPosition": "Python",
         "instruction": "Open for Python.", "type": "discussion", "respondingToStepIndex": None},
        {"round": 1, "phase": "OPENING", "agentId": "engineer", "targetPosition": "JavaScript",
         "instruction": "Open for JavaScript.", "type": "discussion", "respondingToStepIndex": None},
        {"round": 2, "agentId": "analyst", "targetPosition": None,
         "instruction": "Synthesize.", "type": "summary"},
    ],
}


def test_parse_plan_reads_fields():
    options, steps = parse_plan(json.dumps(_DIRECTOR_PLAN))
    assert options == ["Python", "JavaScript"]
    assert len(steps) == 3
    assert steps[1].target_position == "JavaScript"
    assert steps[2].is_summary
    assert steps[2].phase is Phase.SYNTHESIS
    assert steps[2].turn_kind is TurnKind.SUMMARY


def test_parse_plan_strips_code_fence():
    fenced = "```json\n" + json.dumps(_DIRECTOR_PLAN) + "\n```"
    options, steps = parse_plan(fenced)
    assert len(steps) == 3


def test_parse_plan_uses_fallback_options():
    data = dict(_DIRECTOR_PLAN, options=["only one"])
    options, _ = parse_plan(json.dumps(data), fallback_options=["A", "B"])
    assert options == ["A", "B"]


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        json.dumps(["plan"]),
        json.dumps({"options": ["A", "B"]}),
        json.dumps({"options": ["A"], "plan": []}),
        json.dumps({"options": ["A", "B"], "plan": [{"round": 1, "instruction": "x"}]}),
        json.dumps({"options": ["A", "B"], "plan": [{"agentId": "a", "instruction": "x", "round": "1"}]}),
        json.dumps({"options": ["A", "B"], "plan": [{"agentId": "a", "instruction": "x", "round": 1,
                                                     "type": "debate"}]}),
    ],
    ids=["not-json", "not-object", "no-plan", "bad-options", "no-agent", "string-round", "bad-type"],
)
def test_parse_plan_rejects(content):
    with pytest.raises(PlanParseError):
        parse_plan(content)


# ---- ModelPlanner ----


async def test_model_planner_uses_director_json(debate_config, registry, prompts, mock_provider, three_agents):
    mock_provider.generate.return_value = ModelResponse("mock", "mock-model", json.dumps(_DIRECTOR_PLAN), 0.2)
    planner = ModelPlanner(debate_config, registry, prompts)

    plan = await planner.plan("Python or JavaScript?", three_agents, "quick")

    assert plan.options == ["Python", "JavaScript"]
    assert len(plan.steps) == 3
    kwargs = mock_provider.generate.call_args.kwargs
    assert kwargs["json_mode"] is True
    system = mock_provider.generate.call_args.args[0][0]["content"]
    assert "Python or JavaScript?" in system
    assert "(ID: engineer)" in system


async def test_model_planner_warns_on_turn_count_mismatch(debate_config, registry, prompts, mock_provider,
                                                          three_agents, caplog):
    mock_provider.generate.return_value = ModelResponse("mock", "mock-model", json.dumps(_DIRECTOR_PLAN), 0.2)
    with caplog.at_level(logging.WARNING, logger="roundtable.planner"):
        await ModelPlanner(debate_config, registry, prompts).plan("Python or JavaScript?", three_agents, "deep")
    assert "expected 4" in caplog.text


async def test_model_planner_unparseable_response(debate_config, registry, prompts, mock_provider, three_agents):
    mock_provider.generate.return_value = ModelResponse("mock", "mock-model", "Sure! Here is a plan:", 0.2)
    with pytest.raises(PlanParseError):
        await ModelPlanner(debate_config, registry, prompts).plan("Python or JavaScript?", three_agents)


async def test_model_planner_transport_failure(debate_config, registry, prompts, mock_provider, three_agents):
    mock_provider.generate.side_effect = TransportError("mock", "503")
    with pytest.raises(PlanningError, match="503"):
        await ModelPlanner(debate_config, registry, prompts).plan("Python or JavaScript?", three_agents)


async def test_model_planner_rejects_unknown_agent(debate_config, registry, prompts, mock_provider, two_agents):
    # skeptic is not in the two-agent roster
    data = json.loads(json.dumps(_DIRECTOR_PLAN))
    data["plan"][1]["agentId"] = "skeptic"
    mock_provider.generate.return_value = ModelResponse("mock", "mock-model", json.dumps(data), 0.2)
    with pytest.raises(PlanningError, match="skeptic"):
        await ModelPlanner(debate_config, registry, prompts).plan("Python or JavaScript?", two_agents)


def test_build_planner(debate_config, registry, prompts):
    assert isinstance(build_planner("template", debate_config), TemplatePlanner)
    assert isinstance(build_planner("model", debate_config, registry, prompts), ModelPlanner)
    with pytest.raises(ValueError):
        build_planner("model", debate_config)
    with pytest.raises(ValueError):
        build_planner("oracle", debate_config)
