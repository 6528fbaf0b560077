"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from roundtable.models import ContentChunk, ModelResponse, StreamItem, TokenUsage, UsageReport
from roundtable.providers.base import AIProvider, ChatMessages, TransportError, bounded, split_system

logger = logging.getLogger(__name__)


def _to_contents(messages: ChatMessages) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in messages
    ]


def _usage(metadata) -> TokenUsage | None:
    if not metadata:
        return None
    prompt = metadata.prompt_token_count or 0
    completion = metadata.candidates_token_count or 0
    return TokenUsage(prompt=prompt, completion=completion, total=metadata.total_token_count or prompt + completion)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise TransportError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _config_for(self, system: str, temperature: float, json_mode: bool = False) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=temperature,
            max_output_tokens=self._config.max_tokens,
            response_mime_type="application/json" if json_mode else None,
        )

    async def generate(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        system, rest = split_system(messages)
        model = model or self._config.model
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model,
                    contents=_to_contents(rest),
                    config=self._config_for(system, temperature, json_mode),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise TransportError(self._config.name, "Empty response text")

        usage = _usage(response.usage_metadata)
        logger.info("%s completion: %.2fs, %s tokens", self._config.name, latency, usage.total if usage else None)

        return ModelResponse(
            provider=self._config.name,
            model=model,
            content=response.text,
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
        system, rest = split_system(messages)
        try:
            chunks = await asyncio.wait_for(
                self._client.aio.models.generate_content_stream(
                    model=model or self._config.model,
                    contents=_to_contents(rest),
                    config=self._config_for(system, temperature),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise TransportError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise TransportError(self._config.name, f"API call failed: {exc}") from exc

        usage: TokenUsage | None = None
        async for chunk in bounded(chunks, self._config.timeout_sec, self._config.name):
            if chunk.usage_metadata:
                usage = _usage(chunk.usage_metadata)
            if chunk.text:
                yield ContentChunk(chunk.text)

        if usage is not None:
            yield UsageReport(usage)
