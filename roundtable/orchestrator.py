"""Debate orchestration: walk the plan, stream turns, validate, retry, synthesize.

One ``DebateOrchestrator.run`` call owns one ``DebateState``. Steps execute
strictly in plan order; each turn sees every earlier finalized turn. The only
concurrency is the current turn's stream and the caller's cancellation token,
which is raced against every fragment read, validator call and pacing delay.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from config.config_loader import AppConfig
from roundtable.executor import TurnExecutor, TurnRequest
from roundtable.models import (
    Agent,
    ContentChunk,
    DebatePlan,
    DebateState,
    DebateStatus,
    DebateTranscript,
    EventKind,
    Message,
    MessageEvent,
    PlanStep,
    TokenUsage,
    ValidationResult,
)
from roundtable.planner import validate_plan
from roundtable.providers.base import TransportError
from roundtable.repetition import RepetitionDetector
from roundtable.retry import RetryPolicy, attempt_until
from roundtable.validator import ValidationError, Validator

logger = logging.getLogger(__name__)

EventHandler = Callable[[MessageEvent], None]

_DEFAULT_STANCE_RETRY = (
    "{instruction}\n\nIMPORTANT: You must argue for {target_position}. Do not concede any point "
    "to the other side. Stay under {word_cap} words."
)
_DEFAULT_SYNTHESIS_RETRY = (
    "[Moderator note] Your previous synthesis was rejected: {reason}\n"
    "Rewrite it as conditional criteria (\"Choose X if ... / Choose Y if ...\") with no single winner."
)


class CancellationToken:
    """Caller-settable stop signal, observed at every suspension point."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class _Interrupted(Exception):
    """Internal: the cancellation token fired while awaiting."""


@dataclass
class OrchestratorSettings:
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    repetition: RepetitionDetector = field(default_factory=RepetitionDetector)
    turn_delay_sec: float = 0.6
    stance_word_cap: int = 100
    stance_retry: str = _DEFAULT_STANCE_RETRY
    synthesis_retry: str = _DEFAULT_SYNTHESIS_RETRY

    @classmethod
    def from_config(cls, config: AppConfig) -> "OrchestratorSettings":
        debate = config.debate
        return cls(
            retry=RetryPolicy(max_attempts=debate.max_attempts, backoff_sec=debate.backoff_sec),
            repetition=RepetitionDetector(
                window=debate.repetition_window,
                threshold=debate.repetition_threshold,
                min_round=debate.repetition_min_round,
            ),
            turn_delay_sec=debate.turn_delay_sec,
            stance_word_cap=debate.stance_word_cap,
            stance_retry=config.prompts.stance_retry or _DEFAULT_STANCE_RETRY,
            synthesis_retry=config.prompts.synthesis_retry or _DEFAULT_SYNTHESIS_RETRY,
        )


@dataclass
class _Attempt:
    content: str
    usage: TokenUsage | None
    verdict: ValidationResult | None = None
    transport_error: str | None = None

    @property
    def acceptable(self) -> bool:
        return self.transport_error is None and self.verdict is not None and self.verdict.is_valid


class DebateOrchestrator:
    """Runs a planned debate to DONE or CANCELLED and returns the transcript."""

    def __init__(self, executor: TurnExecutor, validator: Validator, settings: OrchestratorSettings | None = None) -> None:
        self._executor = executor
        self._validator = validator
        self._settings = settings or OrchestratorSettings()

    async def run(
        self,
        plan: DebatePlan,
        agents: list[Agent],
        cancel: CancellationToken | None = None,
        on_event: EventHandler | None = None,
    ) -> DebateTranscript:
        """Execute every plan step in order.

        Never raises because of cancellation or transport failures; the
        returned transcript holds every finalized turn.

        Raises:
            PlanningError: If the plan violates its structural invariants.
        """
        validate_plan(plan.steps, agents)
        run = _DebateRun(self, plan, agents, cancel or CancellationToken(), on_event)
        return await run.execute()


class _DebateRun:
    """State and control flow of a single orchestrator invocation."""

    def __init__(
        self,
        orchestrator: DebateOrchestrator,
        plan: DebatePlan,
        agents: list[Agent],
        cancel: CancellationToken,
        on_event: EventHandler | None,
    ) -> None:
        self.executor = orchestrator._executor
        self.validator = orchestrator._validator
        self.settings = orchestrator._settings
        self.plan = plan
        self.roster = {a.id: a for a in agents}
        self.cancel = cancel
        self.on_event = on_event
        self.state = DebateState(plan=plan)
        self.in_flight: Message | None = None
        self.skipped: list[int] = []

    def _set_status(self, status: DebateStatus) -> None:
        if self.state.status is not status:
            logger.debug("Debate state %s -> %s", self.state.status.value, status.value)
            self.state.status = status

    def _emit(self, kind: EventKind, message: Message, delta: str = "") -> None:
        if self.on_event is not None:
            self.on_event(MessageEvent(kind=kind, message=message, delta=delta))

    async def _race(self, awaitable: Awaitable):
        """Await ``awaitable`` unless the cancellation token fires first."""
        if self.cancel.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise _Interrupted
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        if task.cancelled():
            raise _Interrupted
        return task.result()

    async def execute(self) -> DebateTranscript:
        start = time.monotonic()
        steps = self.plan.steps
        try:
            for index, step in enumerate(steps):
                if self.cancel.cancelled:
                    raise _Interrupted
                if not step.is_summary and self._should_skip(index, step):
                    continue
                await self._run_step(index, step)
                if index < len(steps) - 1 and self.settings.turn_delay_sec > 0:
                    await self._race(asyncio.sleep(self.settings.turn_delay_sec))
            self._set_status(DebateStatus.DONE)
        except _Interrupted:
            self.state.cancelled = True
            self._set_status(DebateStatus.CANCELLED)
            logger.info("Debate cancelled after %d finalized turns", len(self.state.history))
        finally:
            if self.in_flight is not None:
                self.in_flight.is_streaming = False

        duration = time.monotonic() - start
        logger.info(
            "Debate %s: %d/%d turns in %.1fs",
            self.state.status.value.lower(), len(self.state.history), len(steps), duration,
        )
        return DebateTranscript(
            topic=self.plan.topic,
            plan=self.plan,
            messages=list(self.state.history),
            status=self.state.status,
            total_duration_sec=duration,
            interrupted=self.in_flight,
            skipped_steps=self.skipped,
        )

    def _should_skip(self, index: int, step: PlanStep) -> bool:
        """Apply the one-way skip-to-summary latch, checking for repetition first."""
        detector = self.settings.repetition
        if not self.state.skip_to_summary and step.round >= detector.min_round:
            if detector.check(self.state.history, step.round):
                self.state.skip_to_summary = True
        if self.state.skip_to_summary:
            logger.info("Skipping step %d (round %d): arguments exhausted", index, step.round)
            self.skipped.append(index)
            return True
        return False

    async def _run_step(self, index: int, step: PlanStep) -> None:
        agent = self.roster[step.agent_id]
        message = Message(
            id=uuid.uuid4().hex,
            role="agent",
            agent_id=agent.id,
            agent_name=agent.name,
            is_streaming=True,
            is_summary=step.is_summary,
            stance=step.target_position,
            round=step.round,
            phase=step.phase,
        )
        self.state.step_to_message_id[index] = message.id
        self.in_flight = message
        self._emit(EventKind.CREATED, message)

        instruction = step.instruction
        retry_context: list[Message] = []

        async def attempt(number: int) -> _Attempt:
            self._set_status(DebateStatus.SUMMARIZING if step.is_summary else DebateStatus.EXECUTING_STEP)
            if message.content:
                message.content = ""
                self._emit(EventKind.RESET, message)
            message.attempts = number
            request = TurnRequest(
                topic=self.plan.topic,
                agent=agent,
                instruction=instruction,
                history=[*self.state.history, *retry_context],
                turn_kind=step.turn_kind,
                target_position=step.target_position,
                round=step.round,
                phase=step.phase,
                previous_agent_stance=self.state.previous_agent_stance,
                previous_agent_name=self.state.previous_agent_name,
                options=self.plan.options,
            )
            usage, error = await self._stream_into(message, request)
            if error is not None:
                return _Attempt(content=message.content, usage=usage, transport_error=error)
            self._set_status(DebateStatus.VALIDATING)
            verdict = await self._validate(step, message.content)
            return _Attempt(content=message.content, usage=usage, verdict=verdict)

        async def on_retry(result: _Attempt, number: int) -> None:
            nonlocal instruction
            self._set_status(DebateStatus.RETRY)
            if result.transport_error is not None:
                logger.warning("Step %d attempt %d failed: %s", index, number, result.transport_error)
                return
            reason = result.verdict.reason if result.verdict else None
            logger.warning("Step %d attempt %d rejected: %s", index, number, reason or "no reason given")
            if step.is_summary:
                retry_context.append(
                    Message(
                        id=uuid.uuid4().hex,
                        role="user",
                        agent_name="Moderator",
                        content=self.settings.synthesis_retry.format(reason=reason or "it declared a winner"),
                    )
                )
            elif step.target_position:
                instruction = self.settings.stance_retry.format(
                    instruction=step.instruction,
                    target_position=step.target_position,
                    word_cap=self.settings.stance_word_cap,
                )

        outcome = await attempt_until(self.settings.retry, attempt, lambda a: a.acceptable, on_retry)

        final = outcome.value
        if final.transport_error is not None:
            logger.warning(
                "Step %d exhausted %d attempts, finalizing with %d chars of partial content",
                index, outcome.attempts, len(final.content),
            )
        message.content = final.content
        message.tokens = final.usage
        message.attempts = outcome.attempts
        message.is_streaming = False
        self.in_flight = None
        self._emit(EventKind.FINALIZED, message)

        self.state.history.append(message)
        if not step.is_summary:
            self.state.previous_agent_stance = step.target_position
            self.state.previous_agent_name = agent.name
        self._set_status(DebateStatus.ADVANCE)
        logger.info(
            "Step %d/%d finalized: %s (round %d, %d attempt%s)",
            index + 1, len(self.plan.steps), agent.name, step.round,
            outcome.attempts, "" if outcome.attempts == 1 else "s",
        )

    async def _stream_into(self, message: Message, request: TurnRequest) -> tuple[TokenUsage | None, str | None]:
        """Append streamed content to ``message``. Returns (usage, transport error)."""
        usage: TokenUsage | None = None
        stream = self.executor.execute(request)
        try:
            while True:
                item = await self._race(anext(stream, None))
                if item is None:
                    break
                if isinstance(item, ContentChunk):
                    message.content += item.text
                    self._emit(EventKind.APPENDED, message, item.text)
                else:
                    usage = item.usage
        except TransportError as exc:
            return usage, str(exc)
        finally:
            await stream.aclose()
        return usage, None

    async def _validate(self, step: PlanStep, content: str) -> ValidationResult:
        if step.is_summary:
            check = self.validator.validate_synthesis(content)
        elif step.target_position:
            check = self.validator.validate_position(content, step.target_position)
        else:
            return ValidationResult(is_valid=True)
        try:
            return await self._race(check)
        except ValidationError as exc:
            logger.warning("Validator unavailable, accepting turn: %s", exc)
            return ValidationResult(is_valid=True, reason="validator unavailable")
