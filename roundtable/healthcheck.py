"""Provider health checks. Pings the providers a debate will call before it starts."""

import asyncio
import logging
from dataclasses import dataclass

from roundtable.models import Agent
from roundtable.providers.base import AIProvider, TransportError
from roundtable.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

_PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
_TIMEOUT_SEC = 15.0


@dataclass
class HealthResult:
    ok: bool
    error: str = ""
    latency_sec: float | None = None


def providers_in_use(registry: ProviderRegistry, agents: list[Agent]) -> dict[str, AIProvider]:
    """The utility provider plus every provider an agent resolves to.

    Agents naming an unconfigured provider are skipped here; their turns
    fail with TransportError and are finalized empty.
    """
    utility = registry.utility_provider()
    used = {utility.name(): utility}
    for agent in agents:
        try:
            provider, _ = registry.resolve(agent)
        except TransportError as exc:
            logger.warning("Agent %s has no usable provider: %s", agent.id, exc)
            continue
        used[provider.name()] = provider
    return used


async def _ping(provider: AIProvider) -> HealthResult:
    try:
        response = await asyncio.wait_for(
            provider.generate(_PING_MESSAGES, temperature=0.0),
            timeout=_TIMEOUT_SEC,
        )
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", provider.name(), exc)
        return HealthResult(ok=False, error=str(exc) or type(exc).__name__)
    return HealthResult(ok=True, latency_sec=response.latency_sec)


async def run_health_checks(providers: dict[str, AIProvider]) -> dict[str, HealthResult]:
    """Ping all providers in parallel, keyed by the same names as ``providers``."""
    names = list(providers)
    results = await asyncio.gather(*(_ping(providers[n]) for n in names))
    return dict(zip(names, results))
