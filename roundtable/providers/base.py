"""Abstract base for all AI model providers."""

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from roundtable.models import ModelResponse, StreamItem

ChatMessages = list[dict[str, str]]


class TransportError(Exception):
    """Raised when a provider call fails or times out."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


def split_system(messages: ChatMessages) -> tuple[str, ChatMessages]:
    """Separate system messages for SDKs that take the system prompt out of band."""
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    rest = [m for m in messages if m["role"] != "system"]
    return system, rest


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence some models wrap around JSON-mode replies."""
    return _FENCE.sub("", text.strip())


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the default model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
        json_mode: bool = False,
    ) -> ModelResponse:
        """Run a single non-streamed completion.

        Args:
            messages: Chat messages (``{"role": ..., "content": ...}``).
            temperature: Sampling temperature.
            model: Model override; defaults to ``model_string()``.
            json_mode: Ask the model for a JSON object.

        Raises:
            TransportError: On API failure, timeout, or empty response.
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: ChatMessages,
        *,
        temperature: float,
        model: str | None = None,
    ) -> AsyncIterator[StreamItem]:
        """Stream a completion.

        Yields ContentChunk items as text arrives, then at most one
        UsageReport. Raises TransportError on failure.
        """
        ...


async def bounded(stream: AsyncIterator, timeout_sec: float, provider_name: str) -> AsyncIterator:
    """Re-yield an SDK stream, bounding the wait for each item."""
    iterator = aiter(stream)
    while True:
        try:
            item = await asyncio.wait_for(anext(iterator), timeout=timeout_sec)
        except StopAsyncIteration:
            return
        except TimeoutError as exc:
            raise TransportError(provider_name, f"Stream stalled for {timeout_sec}s") from exc
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(provider_name, f"Stream failed: {exc}") from exc
        yield item
