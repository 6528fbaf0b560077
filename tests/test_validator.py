"""Tests for roundtable/validator.py."""

import pytest

from roundtable.models import ModelResponse
from roundtable.providers.base import TransportError
from roundtable.validator import ModelValidator, RuleValidator, ValidationError, build_validator


def _reply(content: str) -> ModelResponse:
    return ModelResponse("mock", "mock-model", content, 0.1)


# ---- RuleValidator ----


async def test_rules_accept_on_stance_argument():
    result = await RuleValidator().validate_position("Python's readability pays off for years.", "Python")
    assert result.is_valid


async def test_rules_reject_concession():
    result = await RuleValidator().validate_position("You're right, Python is slower for this.", "Python")
    assert not result.is_valid
    assert "Concedes" in result.reason


async def test_rules_reject_off_stance():
    result = await RuleValidator().validate_position("Both have good communities.", "Python")
    assert not result.is_valid


async def test_rules_reject_declared_winner():
    result = await RuleValidator().validate_synthesis("JavaScript is better for you.")
    assert not result.is_valid
    assert "winner" in result.reason


async def test_rules_accept_conditional_criteria():
    text = "Choose Python if you want data work. Choose JavaScript if you want to build web apps."
    result = await RuleValidator().validate_synthesis(text)
    assert result.is_valid


async def test_rules_need_criteria_for_both_sides():
    result = await RuleValidator().validate_synthesis("Choose Python if you like data. Otherwise, who knows.")
    assert not result.is_valid


# ---- ModelValidator ----


async def test_model_validator_parses_verdict(registry, prompts, mock_provider):
    mock_provider.generate.return_value = _reply('{"isValid": false, "reason": "concedes"}')
    result = await ModelValidator(registry, prompts).validate_position("I agree JS wins.", "Python")

    assert result.is_valid is False
    assert result.reason == "concedes"
    prompt = mock_provider.generate.call_args.args[0][0]["content"]
    assert '"Python"' in prompt
    assert "I agree JS wins." in prompt
    assert mock_provider.generate.call_args.kwargs["temperature"] == 0.0


async def test_model_validator_synthesis(registry, prompts, mock_provider):
    mock_provider.generate.return_value = _reply('{"isValid": true}')
    result = await ModelValidator(registry, prompts).validate_synthesis("Choose X if... Choose Y if...")
    assert result.is_valid
    assert result.reason is None


async def test_model_validator_accepts_fenced_json(registry, prompts, mock_provider):
    mock_provider.generate.return_value = _reply('```json\n{"isValid": false, "reason": "declares a winner"}\n```')
    result = await ModelValidator(registry, prompts).validate_synthesis("JavaScript is better.")
    assert result.is_valid is False
    assert result.reason == "declares a winner"


@pytest.mark.parametrize(
    "setup",
    [
        {"side_effect": TransportError("mock", "timeout")},
        {"return_value": _reply("The text is valid.")},
        {"return_value": _reply('{"valid": "yes"}')},
    ],
    ids=["transport", "not-json", "wrong-shape"],
)
async def test_model_validator_errors(registry, prompts, mock_provider, setup):
    for attr, value in setup.items():
        setattr(mock_provider.generate, attr, value)
    with pytest.raises(ValidationError):
        await ModelValidator(registry, prompts).validate_position("text", "Python")


def test_build_validator(registry, prompts):
    assert isinstance(build_validator("rules"), RuleValidator)
    assert isinstance(build_validator("model", registry, prompts), ModelValidator)
    with pytest.raises(ValueError):
        build_validator("model")
    with pytest.raises(ValueError):
        build_validator("vibes")
