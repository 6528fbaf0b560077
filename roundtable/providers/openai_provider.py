"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from roundtable.models import ContentChunk, ModelResponse, StreamItem, TokenUsage, UsageReport
from roundtable.providers.base import AIProvider, ChatMessages, TransportError, bounded

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise TransportError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def generate(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        model = model or self._config.model
        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=self._config.max_tokens,
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise TransportError(self._config.name, "Empty response content")

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                prompt=response.usage.prompt_tokens,
                completion=response.usage.completion_tokens,
                total=response.usage.total_tokens,
            )

        logger.info("%s completion: %.2fs, %s tokens", self._config.name, latency, usage.total if usage else None)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=choice.message.content,
            latency_sec=latency,
            usage=usage,
        )

    async def stream(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
    ) -> AsyncIterator[StreamItem]:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model or self._config.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=self._config.max_tokens,
                    stream=True,
                    stream_options={"include_usage": True},
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        usage: TokenUsage | None = None
        async for chunk in bounded(response, self._config.timeout_sec, self._config.name):
            if chunk.usage:
                usage = TokenUsage(
                    prompt=chunk.usage.prompt_tokens,
                    completion=chunk.usage.completion_tokens,
                    total=chunk.usage.total_tokens,
                )
            if chunk.choices and chunk.choices[0].delta.content:
                yield ContentChunk(chunk.choices[0].delta.content)

        if usage is not None:
            yield UsageReport(usage)
