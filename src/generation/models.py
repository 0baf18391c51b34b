"""Data models for provider replies, attempts, and the orchestration trace."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class Provider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    FALLBACK = "fallback"


class OrchestratorState(StrEnum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    ATTEMPTING_FALLBACK = "attempting_fallback"
    DONE = "done"


class ProviderError(Exception):
    """A provider call failed: transport error, bad credentials, empty or malformed output."""


@dataclass(frozen=True)
class TokenUsage:
    prompt: int = 0
    completion: int = 0
    total: int = 0


@dataclass(frozen=True)
class ProviderReply:
    """What an adapter returns on success."""

    text: str
    model: str
    token_usage: TokenUsage | None = None


@dataclass(frozen=True)
class AttemptSuccess:
    text: str
    token_usage: TokenUsage | None = None


@dataclass(frozen=True)
class AttemptFailure:
    reason: str
    timed_out: bool = False


@dataclass(frozen=True)
class GenerationAttempt:
    """One provider try within a single request."""

    provider: str
    model: str
    started_at: datetime
    latency_ms: float
    outcome: AttemptSuccess | AttemptFailure

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, AttemptSuccess)

    @property
    def outcome_label(self) -> str:
        if isinstance(self.outcome, AttemptSuccess):
            return "success"
        return "timeout" if self.outcome.timed_out else "failure"


@dataclass(frozen=True)
class GenerationResult:
    text: str
    provider: str
    model: str
    trace: list[GenerationAttempt] = field(default_factory=list)

    @property
    def winning_attempt(self) -> GenerationAttempt | None:
        return self.trace[-1] if self.trace and self.trace[-1].succeeded else None
