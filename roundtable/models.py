"""Pure dataclasses for the roundtable debate engine. No logic, no deps."""

import time
from dataclasses import dataclass, field
from enum import Enum


class Verbosity(str, Enum):
    CONCISE = "concise"
    BALANCED = "balanced"
    DETAILED = "detailed"


class Phase(str, Enum):
    OPENING = "OPENING"
    CONFRONTATION = "CONFRONTATION"
    SYNTHESIS = "SYNTHESIS"


class StepType(str, Enum):
    DISCUSSION = "discussion"
    SUMMARY = "summary"


class TurnKind(str, Enum):
    INITIAL = "initial"
    RESPONSE = "response"
    COUNTER = "counter"
    SUMMARY = "summary"
    VALIDATE = "validate"
    VALIDATE_SYNTHESIS = "validate-synthesis"


class DebateStatus(str, Enum):
    PLANNING = "PLANNING"
    EXECUTING_STEP = "EXECUTING_STEP"
    VALIDATING = "VALIDATING"
    RETRY = "RETRY"
    ADVANCE = "ADVANCE"
    SUMMARIZING = "SUMMARIZING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class EventKind(str, Enum):
    CREATED = "created"
    APPENDED = "appended"
    RESET = "reset"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Agent:
    id: str
    name: str
    persona: str
    model: str = ""            # "provider:model", a provider name, or a bare model string
    temperature: float = 0.7
    verbosity: Verbosity = Verbosity.BALANCED
    avatar: str | None = None


@dataclass
class PlanStep:
    agent_id: str
    instruction: str
    type: StepType
    round: int
    turn_kind: TurnKind
    phase: Phase | None = None
    target_position: str | None = None
    responding_to_step_index: int | None = None

    @property
    def is_summary(self) -> bool:
        return self.type is StepType.SUMMARY


@dataclass
class DebatePlan:
    topic: str
    steps: list[PlanStep]
    options: list[str]
    mode: str = "quick"        # "quick" or "deep"
    question_type: str = "GENERAL"


@dataclass
class TokenUsage:
    prompt: int
    completion: int
    total: int


@dataclass
class Message:
    id: str
    role: str                  # "user" or "agent"
    content: str = ""
    timestamp: float = field(default_factory=time.time)
    agent_id: str | None = None
    agent_name: str | None = None
    is_streaming: bool = False
    is_summary: bool = False
    stance: str | None = None
    round: int | None = None
    phase: Phase | None = None
    tokens: TokenUsage | None = None
    attempts: int = 0


@dataclass
class ValidationResult:
    is_valid: bool
    reason: str | None = None


@dataclass
class ContentChunk:
    text: str


@dataclass
class UsageReport:
    usage: TokenUsage


StreamItem = ContentChunk | UsageReport


@dataclass
class MessageEvent:
    kind: EventKind
    message: Message
    delta: str = ""


@dataclass
class ModelResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    usage: TokenUsage | None = None


@dataclass
class DebateState:
    plan: DebatePlan
    history: list[Message] = field(default_factory=list)
    step_to_message_id: dict[int, str] = field(default_factory=dict)
    previous_agent_stance: str | None = None
    previous_agent_name: str | None = None
    skip_to_summary: bool = False
    cancelled: bool = False
    status: DebateStatus = DebateStatus.PLANNING


@dataclass
class DebateTranscript:
    topic: str
    plan: DebatePlan
    messages: list[Message]
    status: DebateStatus
    total_duration_sec: float
    interrupted: Message | None = None
    skipped_steps: list[int] = field(default_factory=list)
