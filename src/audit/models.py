"""TypedDict models for audit store records."""

from typing import TypedDict


class InteractionRecord(TypedDict):
    id: str
    caller_id: str
    session_id: str
    timestamp: str  # ISO 8601
    question_digest: str  # SHA-256 hex
    response_digest: str  # SHA-256 hex
    provider: str
    model: str
    latency_ms: float
    attempt_count: int
    total_tokens: int | None
    response_length: int
    risk_level: str  # low | medium | high
    flags: list[str]
    review_required: bool
    terms_version: str


class ReviewFlagRecord(TypedDict):
    id: int
    interaction_id: str  # lookup only, no foreign key
    caller_id: str
    session_id: str
    risk_level: str
    flags: list[str]
    reason: str
    flagged_at: str  # ISO 8601
    resolved: bool
    resolved_at: str | None
    resolved_by: str | None
    action: str | None  # approved | user_warned | account_suspended


class SessionRecord(TypedDict):
    session_id: str
    caller_id: str
    started_at: str  # ISO 8601
    last_activity: str  # ISO 8601
    total_questions: int
