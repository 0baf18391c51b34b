"""Interaction recorder — classify, persist, and escalate each completed request.

Recording is best-effort: every step catches and logs its own failure, and
nothing here raises to the caller. The three writes (interaction, session
counter, review flag) are independent; a failed counter update never rolls
back a saved interaction.
"""

import asyncio
import hashlib
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from uuid import uuid4

from src.audit.models import InteractionRecord
from src.audit.store import InteractionStore
from src.generation.models import AttemptSuccess, GenerationAttempt
from src.observability.metrics import INTERACTIONS_RECORDED, RECORDER_FAILURES, REVIEW_FLAGS_CREATED
from src.safety.classifier import RiskLevel, SafetyAssessment, classify

logger = logging.getLogger(__name__)


def compute_digest(content: str) -> str:
    """One-way SHA-256 fingerprint of ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def build_interaction_record(
    *,
    caller_id: str,
    session_id: str,
    question: str,
    response: str,
    trace: Sequence[GenerationAttempt],
    assessment: SafetyAssessment,
    terms_version: str,
) -> InteractionRecord:
    """Assemble the immutable audit record for one completed request."""
    winner = trace[-1] if trace else None
    total_tokens: int | None = None
    if winner is not None and isinstance(winner.outcome, AttemptSuccess) and winner.outcome.token_usage:
        total_tokens = winner.outcome.token_usage.total

    return InteractionRecord(
        id=uuid4().hex,
        caller_id=caller_id,
        session_id=session_id,
        timestamp=datetime.now(UTC).isoformat(),
        question_digest=compute_digest(question),
        response_digest=compute_digest(response),
        provider=winner.provider if winner else "unknown",
        model=winner.model if winner else "",
        latency_ms=sum(a.latency_ms for a in trace),
        attempt_count=len(trace),
        total_tokens=total_tokens,
        response_length=len(response),
        risk_level=assessment.risk_level.value,
        flags=sorted(assessment.flags),
        review_required=assessment.review_required,
        terms_version=terms_version,
    )


class InteractionRecorder:
    """Records interactions to an :class:`InteractionStore`.

    ``record`` does the work inline; ``dispatch`` schedules it as a detached
    task so the response path never waits on it. ``drain`` awaits any tasks
    still in flight (used at shutdown).
    """

    def __init__(
        self,
        store: InteractionStore,
        classifier: Callable[[str, str], SafetyAssessment] = classify,
        terms_version: str = "1.0",
    ) -> None:
        self._store = store
        self._classify = classifier
        self._terms_version = terms_version
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> InteractionStore:
        return self._store

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def record(
        self,
        caller_id: str,
        session_id: str,
        question: str,
        response: str,
        trace: Sequence[GenerationAttempt],
    ) -> None:
        """Classify and persist one interaction. Never raises."""
        try:
            assessment = self._classify(question, response)
            record = build_interaction_record(
                caller_id=caller_id,
                session_id=session_id,
                question=question,
                response=response,
                trace=trace,
                assessment=assessment,
                terms_version=self._terms_version,
            )
        except Exception:
            RECORDER_FAILURES.labels(operation="classify").inc()
            logger.exception("Failed to build interaction record for caller '%s'", caller_id)
            return

        try:
            await self._store.create_interaction_record(record)
            INTERACTIONS_RECORDED.labels(risk_level=record["risk_level"]).inc()
        except Exception:
            RECORDER_FAILURES.labels(operation="interaction").inc()
            logger.exception("Failed to persist interaction %s for caller '%s'", record["id"], caller_id)

        try:
            await self._store.increment_session_counter(session_id, caller_id)
        except Exception:
            RECORDER_FAILURES.labels(operation="session_counter").inc()
            logger.exception("Failed to update question count for session '%s'", session_id)

        if assessment.review_required or assessment.risk_level == RiskLevel.HIGH:
            await self._flag_for_review(record)

    async def _flag_for_review(self, record: InteractionRecord) -> None:
        try:
            await self._store.create_review_flag(
                interaction_id=record["id"],
                caller_id=record["caller_id"],
                session_id=record["session_id"],
                risk_level=record["risk_level"],
                flags=record["flags"],
            )
        except Exception:
            RECORDER_FAILURES.labels(operation="review_flag").inc()
            logger.exception("Failed to flag interaction %s for review", record["id"])
            return

        REVIEW_FLAGS_CREATED.inc()
        logger.warning(
            "AI content flagged for review: interaction=%s caller=%s risk=%s flags=%s",
            record["id"],
            record["caller_id"],
            record["risk_level"],
            ",".join(record["flags"]),
        )

    def dispatch(
        self,
        caller_id: str,
        session_id: str,
        question: str,
        response: str,
        trace: Sequence[GenerationAttempt],
    ) -> "asyncio.Task[None]":
        """Schedule ``record`` on the running loop and return immediately."""
        task = asyncio.create_task(
            self.record(caller_id, session_id, question, response, list(trace)),
            name=f"record-interaction-{session_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched recording to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
