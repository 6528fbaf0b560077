"""Shared pytest fixtures."""

import asyncio
import re
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, DebateConfig, PromptsConfig, load_config
from roundtable.models import (
    Agent,
    ContentChunk,
    ModelResponse,
    StreamItem,
    TokenUsage,
    UsageReport,
    Verbosity,
)
from roundtable.providers.base import AIProvider, TransportError
from roundtable.providers.registry import ProviderRegistry


def chunks_of(text: str) -> list[str]:
    """Split text into word-sized fragments that join back to the original."""
    return re.findall(r"\S+\s*", text)


class MockProvider(AIProvider):
    """Test double AIProvider.

    ``replies`` feeds ``stream``: each entry is a reply string, an exception
    to raise before any content, or a ``(partial_text, exception)`` tuple
    that streams some content and then fails. When the script runs out,
    ``default_reply`` is streamed.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        replies: list | None = None,
        default_reply: str = "Mock response",
        json_reply: str = '{"isValid": true}',
    ) -> None:
        self._name = provider_name
        self.replies = list(replies or [])
        self.default_reply = default_reply
        self.stream_calls: list[dict] = []
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=ModelResponse(
                provider=provider_name,
                model="mock-model",
                content=json_reply,
                latency_sec=0.1,
                usage=TokenUsage(prompt=5, completion=5, total=10),
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, messages, *, temperature, model=None, json_mode=False) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ModelResponse(self._name, "mock-model", "{}", 0.1)

    async def stream(self, messages, *, temperature, model=None) -> AsyncIterator[StreamItem]:
        self.stream_calls.append({"messages": messages, "temperature": temperature, "model": model})
        reply = self.replies.pop(0) if self.replies else self.default_reply
        if isinstance(reply, Exception):
            raise reply
        failure = None
        if isinstance(reply, tuple):
            reply, failure = reply
        pieces = chunks_of(reply)
        for piece in pieces:
            await asyncio.sleep(0)
            yield ContentChunk(piece)
        if failure is not None:
            raise failure
        yield UsageReport(TokenUsage(prompt=20, completion=len(pieces), total=20 + len(pieces)))


def transport_error(message: str = "connection reset") -> TransportError:
    return TransportError("mock", message)


@pytest.fixture
def app_config() -> AppConfig:
    """The shipped settings.yaml, so prompt templates are exercised for real."""
    return load_config()


@pytest.fixture
def prompts(app_config: AppConfig) -> PromptsConfig:
    return app_config.prompts


@pytest.fixture
def debate_config() -> DebateConfig:
    return DebateConfig(turn_delay_sec=0.0)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def registry(mock_provider: MockProvider) -> ProviderRegistry:
    return ProviderRegistry(providers={"mock": mock_provider}, default="mock")


@pytest.fixture
def three_agents() -> list[Agent]:
    return [
        Agent(id="analyst", name="Strategic Analyst", persona="You weigh long-term tradeoffs.",
              temperature=0.6, verbosity=Verbosity.CONCISE),
        Agent(id="engineer", name="Pragmatic Engineer", persona="You are a software developer who ships.",
              temperature=0.7),
        Agent(id="skeptic", name="Devil's Advocate", persona="You attack the popular choice.",
              temperature=0.9),
    ]


@pytest.fixture
def two_agents(three_agents: list[Agent]) -> list[Agent]:
    return three_agents[:2]
