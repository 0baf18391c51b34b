"""Generation orchestrator — static-priority failover across provider adapters.

States: PENDING → ATTEMPTING(i) for each external provider in order → DONE(i)
on the first success, otherwise ATTEMPTING_FALLBACK → DONE(fallback). Every
attempt, failed or not, is appended to the trace. ``generate`` never raises.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from datetime import UTC, datetime

from src.generation.fallback import FallbackGenerator
from src.generation.models import (
    AttemptFailure,
    AttemptSuccess,
    GenerationAttempt,
    GenerationResult,
    OrchestratorState,
    Provider,
    ProviderReply,
)
from src.generation.prompts import CoachingContext
from src.generation.providers import ProviderAdapter
from src.observability.metrics import GENERATIONS_TOTAL, PROVIDER_ATTEMPT_DURATION, PROVIDER_ATTEMPTS_TOTAL

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def _discard_late_result(task: "asyncio.Task[object]") -> None:
    """Retrieve the outcome of an abandoned attempt so it is never reported as unhandled."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned provider attempt finished with %s", type(exc).__name__)


def _classify_reply(reply: object, default_model: str) -> tuple[AttemptSuccess | AttemptFailure, str]:
    """Turn whatever an adapter returned into an attempt outcome and model name."""
    if not isinstance(reply, ProviderReply) or not isinstance(reply.text, str):
        return AttemptFailure(reason=f"malformed response: {type(reply).__name__}"), default_model
    if not reply.text.strip():
        return AttemptFailure(reason="empty response"), default_model
    return AttemptSuccess(text=reply.text, token_usage=reply.token_usage), reply.model or default_model


def _transition(current: OrchestratorState, new: OrchestratorState, provider: str) -> OrchestratorState:
    logger.debug("Generation %s -> %s (%s)", current, new, provider)
    return new


class GenerationOrchestrator:
    """Tries each adapter in order with a per-attempt timeout, then the local fallback."""

    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        fallback: FallbackGenerator | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._adapters = list(adapters)
        self._fallback = fallback or FallbackGenerator()
        self._timeout_seconds = timeout_seconds

    @property
    def provider_names(self) -> list[str]:
        return [a.name for a in self._adapters] + [self._fallback.name]

    async def _attempt(self, adapter: ProviderAdapter, prompt: str, context: CoachingContext | None) -> GenerationAttempt:
        """Race one adapter call against the timeout.

        On timeout the call is cancelled but not awaited, so an adapter that
        ignores cancellation cannot hold up the next provider.
        """
        started_at = datetime.now(UTC)
        start = time.monotonic()
        task = asyncio.ensure_future(adapter.attempt(prompt, context, self._timeout_seconds))

        outcome: AttemptSuccess | AttemptFailure
        model = adapter.model
        try:
            done, _ = await asyncio.wait({task}, timeout=self._timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            task.add_done_callback(_discard_late_result)
            outcome = AttemptFailure(reason=f"timed out after {self._timeout_seconds:g}s", timed_out=True)
        elif task.cancelled():
            # Cancelled from inside the adapter, not by us.
            outcome = AttemptFailure(reason="cancelled by provider")
        else:
            try:
                reply = task.result()
            except (Exception, asyncio.CancelledError) as exc:
                outcome = AttemptFailure(reason=f"{type(exc).__name__}: {exc}")
            else:
                outcome, model = _classify_reply(reply, adapter.model)

        latency = time.monotonic() - start
        attempt = GenerationAttempt(
            provider=adapter.name,
            model=model,
            started_at=started_at,
            latency_ms=latency * 1000,
            outcome=outcome,
        )
        try:
            PROVIDER_ATTEMPTS_TOTAL.labels(provider=adapter.name, outcome=attempt.outcome_label).inc()
            PROVIDER_ATTEMPT_DURATION.labels(provider=adapter.name).observe(latency)
        except Exception:
            logger.debug("metrics: provider attempt recording failed", exc_info=True)
        return attempt

    async def _run_fallback(self, prompt: str, context: CoachingContext | None) -> tuple[str, GenerationAttempt]:
        started_at = datetime.now(UTC)
        start = time.monotonic()
        try:
            text = self._fallback.generate(prompt, context)
        except Exception:
            # The fallback is pure and should not raise; keep the no-fail guarantee regardless.
            logger.exception("Fallback generator raised; using the general answer")
            text = FallbackGenerator(topics=()).generate(prompt, None)
        latency = time.monotonic() - start
        PROVIDER_ATTEMPTS_TOTAL.labels(provider=self._fallback.name, outcome="success").inc()
        return text, GenerationAttempt(
            provider=self._fallback.name,
            model=self._fallback.model,
            started_at=started_at,
            latency_ms=latency * 1000,
            outcome=AttemptSuccess(text=text),
        )

    async def generate(self, prompt: str, context: CoachingContext | None = None) -> GenerationResult:
        """Produce text for ``prompt``.

        Args:
            prompt: The caller's question.
            context: Coaching persona used to build provider prompts.

        Returns:
            The first successful provider's text, or the fallback's, with the
            full attempt trace.
        """
        state = OrchestratorState.PENDING
        trace: list[GenerationAttempt] = []

        for index, adapter in enumerate(self._adapters):
            state = _transition(state, OrchestratorState.ATTEMPTING, adapter.name)
            attempt = await self._attempt(adapter, prompt, context)
            trace.append(attempt)
            if isinstance(attempt.outcome, AttemptSuccess):
                _transition(state, OrchestratorState.DONE, adapter.name)
                GENERATIONS_TOTAL.labels(provider=adapter.name).inc()
                logger.info("Provider '%s' answered (attempt %d, %.0f ms)", adapter.name, index + 1, attempt.latency_ms)
                return GenerationResult(text=attempt.outcome.text, provider=adapter.name, model=attempt.model, trace=trace)
            logger.warning(
                "Provider '%s' failed, trying next: %s (%.0f ms)",
                adapter.name,
                attempt.outcome.reason,
                attempt.latency_ms,
            )

        if self._adapters:
            logger.warning("All %d external providers failed; answering with local fallback", len(self._adapters))
        state = _transition(state, OrchestratorState.ATTEMPTING_FALLBACK, self._fallback.name)
        text, attempt = await self._run_fallback(prompt, context)
        trace.append(attempt)
        _transition(state, OrchestratorState.DONE, self._fallback.name)
        GENERATIONS_TOTAL.labels(provider=Provider.FALLBACK.value).inc()
        return GenerationResult(text=text, provider=attempt.provider, model=attempt.model, trace=trace)
