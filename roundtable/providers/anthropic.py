"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from roundtable.models import ContentChunk, ModelResponse, StreamItem, TokenUsage, UsageReport
from roundtable.providers.base import AIProvider, ChatMessages, TransportError, bounded, split_system

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise TransportError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _request(self, messages: ChatMessages, temperature: float, model: str | None) -> dict:
        system, rest = split_system(messages)
        request = {
            "model": model or self._config.model,
            "max_tokens": self._config.max_tokens,
            "temperature": min(temperature, 1.0),
            "messages": rest or [{"role": "user", "content": system}],
        }
        if system and rest:
            request["system"] = system
        return request

    async def generate(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        # No native JSON mode; the prompts already ask for a bare JSON object.
        request = self._request(messages, temperature, model)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**request),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise TransportError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise TransportError(self._config.name, "No text blocks in response")

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                prompt=response.usage.input_tokens,
                completion=response.usage.output_tokens,
                total=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info("%s completion: %.2fs, %s tokens", self._config.name, latency, usage.total if usage else None)

        return ModelResponse(
            provider=self._config.name,
            model=request["model"],
            content="\n".join(text_blocks),
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
        request = self._request(messages, temperature, model)
        try:
            events = await asyncio.wait_for(
                self._client.messages.create(stream=True, **request),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        prompt_tokens = 0
        completion_tokens = 0
        async for event in bounded(events, self._config.timeout_sec, self._config.name):
            if event.type == "message_start":
                prompt_tokens = event.message.usage.input_tokens
            elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                yield ContentChunk(event.delta.text)
            elif event.type == "message_delta" and event.usage:
                completion_tokens = event.usage.output_tokens

        yield UsageReport(
            TokenUsage(
                prompt=prompt_tokens,
                completion=completion_tokens,
                total=prompt_tokens + completion_tokens,
            )
        )
