"""Coaching request service — the single inbound entry point.

Flow per request:
1. Check every quota policy for the caller's tier; deny with
   :class:`QuotaExceededError` if any is exhausted.
2. Generate text through the orchestrator (never fails).
3. Hand the interaction to the recorder as a detached task and return the
   text without waiting on persistence.
"""

import logging
import math
from dataclasses import dataclass
from uuid import uuid4

from src.audit.recorder import InteractionRecorder
from src.audit.store import InteractionStore, SQLiteInteractionStore
from src.config import Settings, get_settings
from src.generation.fallback import FallbackGenerator
from src.generation.orchestrator import GenerationOrchestrator
from src.generation.prompts import CoachingContext
from src.generation.providers import build_adapters
from src.ratelimit.limiter import RateLimiter
from src.ratelimit.models import RateLimitResult, SubscriptionTier
from src.ratelimit.policies import QuotaTable, load_quota_table

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """The caller has exhausted at least one quota policy for their tier."""

    def __init__(
        self,
        *,
        caller_id: str,
        tier: str,
        policy: str,
        limit: int,
        retry_after_ms: int,
        reset_at_ms: int,
    ) -> None:
        self.caller_id = caller_id
        self.tier = tier
        self.policy = policy
        self.limit = limit
        self.retry_after_ms = retry_after_ms
        self.reset_at_ms = reset_at_ms
        super().__init__(f"Rate limit exceeded. Try again in {self.retry_after_seconds} seconds.")

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after_ms / 1000))


@dataclass(frozen=True)
class CoachingResponse:
    text: str
    provider: str
    session_id: str
    rate_limit: RateLimitResult


class CoachingRequestService:
    """Composes the limiter, orchestrator and recorder for one request."""

    def __init__(
        self,
        limiter: RateLimiter,
        quota_table: QuotaTable,
        orchestrator: GenerationOrchestrator,
        recorder: InteractionRecorder,
    ) -> None:
        self.limiter = limiter
        self.quota_table = quota_table
        self.orchestrator = orchestrator
        self.recorder = recorder

    async def handle(
        self,
        caller_id: str,
        tier: SubscriptionTier | str,
        question: str,
        context: CoachingContext | None = None,
        session_id: str | None = None,
    ) -> str:
        """Answer ``question`` for ``caller_id``.

        Raises:
            QuotaExceededError: If any of the tier's quota policies denies the request.
            ValueError: If ``tier`` is not a known subscription tier.
        """
        response = await self.handle_detailed(caller_id, tier, question, context, session_id)
        return response.text

    async def handle_detailed(
        self,
        caller_id: str,
        tier: SubscriptionTier | str,
        question: str,
        context: CoachingContext | None = None,
        session_id: str | None = None,
    ) -> CoachingResponse:
        """Like :meth:`handle`, but also returns provider, session and quota details."""
        tier = SubscriptionTier(tier)
        policies = self.quota_table.policies_for(tier)

        decision = await self.limiter.check_all(caller_id, policies)
        if not decision.allowed:
            raise QuotaExceededError(
                caller_id=caller_id,
                tier=tier.value,
                policy=decision.policy,
                limit=decision.limit,
                retry_after_ms=decision.retry_after_ms or 1,
                reset_at_ms=decision.reset_at,
            )

        session_id = session_id or uuid4().hex[:8]
        result = await self.orchestrator.generate(question, context)
        logger.info(
            "Answered caller '%s' (tier=%s, session=%s) via %s after %d attempt(s)",
            caller_id,
            tier,
            session_id,
            result.provider,
            len(result.trace),
        )

        self.recorder.dispatch(caller_id, session_id, question, result.text, result.trace)
        return CoachingResponse(
            text=result.text,
            provider=result.provider,
            session_id=session_id,
            rate_limit=decision,
        )


def build_service(
    settings: Settings | None = None,
    store: InteractionStore | None = None,
) -> CoachingRequestService:
    """Wire a service from settings: quota table, providers, and the audit store.

    ``store`` defaults to a SQLite store opened at ``settings.audit_db_path``.

    Raises:
        FileNotFoundError: If a quota policy file is configured but missing.
        ValueError: If the quota policy file is invalid or no audit store path is set.
    """
    settings = settings or get_settings()

    quota_table = load_quota_table(settings.quota_policies_path, fail_open=settings.rate_limit_fail_open)
    adapters = build_adapters(settings)
    orchestrator = GenerationOrchestrator(
        adapters,
        fallback=FallbackGenerator(),
        timeout_seconds=settings.provider_timeout_seconds,
    )
    if store is None:
        store = SQLiteInteractionStore.open(settings.audit_db_path)
    recorder = InteractionRecorder(store, terms_version=settings.terms_version)

    logger.info("Coaching service ready (providers: %s)", ", ".join(orchestrator.provider_names))
    return CoachingRequestService(RateLimiter(), quota_table, orchestrator, recorder)
