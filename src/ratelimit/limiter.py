"""Fixed-window rate limiter.

Window boundaries are derived from the canonical clock, not from a caller's
first request: a request at ``now`` belongs to window ``floor(now / duration)``.
All counter state lives in an injected :class:`~src.ratelimit.store.CounterStore`.
"""

import logging
import time
from collections.abc import Callable, Sequence

from src.observability.metrics import (
    RATE_LIMIT_DECISIONS,
    RATE_LIMIT_STORE_ERRORS,
    RATE_LIMIT_WINDOWS_SWEPT,
)
from src.ratelimit.models import QuotaPolicy, RateLimitResult, RateLimitWindow
from src.ratelimit.store import CounterStore, InMemoryCounterStore

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """Counts requests per key and policy window and reports whether each is admitted."""

    def __init__(
        self,
        store: CounterStore | None = None,
        clock: Callable[[], int] = _wall_clock_ms,
    ) -> None:
        self._store: CounterStore = store if store is not None else InMemoryCounterStore()
        self._clock = clock
        self._last_now_ms = 0

    def now_ms(self) -> int:
        """Read the canonical clock, never letting it move backward."""
        now = self._clock()
        if now < self._last_now_ms:
            logger.debug("Clock moved backward by %d ms; holding last value", self._last_now_ms - now)
            return self._last_now_ms
        self._last_now_ms = now
        return now

    @staticmethod
    def _window_bounds(now_ms: int, policy: QuotaPolicy) -> tuple[int, int, int]:
        window_id = now_ms // policy.window_duration_ms
        start = window_id * policy.window_duration_ms
        return window_id, start, start + policy.window_duration_ms

    def _result_from_window(self, window: RateLimitWindow, policy: QuotaPolicy, now_ms: int) -> RateLimitResult:
        allowed = window.count <= policy.max_requests
        return RateLimitResult(
            allowed=allowed,
            limit=policy.max_requests,
            remaining=max(0, policy.max_requests - window.count),
            reset_at=window.window_end,
            retry_after_ms=None if allowed else max(1, window.window_end - now_ms),
            policy=policy.name,
        )

    def _store_failure_result(self, policy: QuotaPolicy, now_ms: int) -> RateLimitResult:
        _, _, window_end = self._window_bounds(now_ms, policy)
        if policy.fail_open:
            RATE_LIMIT_STORE_ERRORS.labels(policy=policy.name, mode="open").inc()
            logger.warning("Rate limit store unavailable for policy '%s'; failing open", policy.name)
            return RateLimitResult(
                allowed=True,
                limit=policy.max_requests,
                remaining=policy.max_requests,
                reset_at=window_end,
                policy=policy.name,
            )
        RATE_LIMIT_STORE_ERRORS.labels(policy=policy.name, mode="closed").inc()
        logger.error("Rate limit store unavailable for policy '%s'; failing closed", policy.name)
        return RateLimitResult(
            allowed=False,
            limit=policy.max_requests,
            remaining=0,
            reset_at=window_end,
            retry_after_ms=max(1, window_end - now_ms),
            policy=policy.name,
        )

    async def check(self, key: str, policy: QuotaPolicy) -> RateLimitResult:
        """Count one request against ``key`` under ``policy``.

        Args:
            key: Counter key, usually ``policy.key_for(caller_id)``.
            policy: The quota to enforce.

        Returns:
            The decision. A store failure yields an allowed or denied result
            according to ``policy.fail_open``; it never raises.
        """
        now = self.now_ms()
        window_id, start, end = self._window_bounds(now, policy)
        try:
            window = await self._store.increment(key, window_id, start, end)
        except Exception:
            logger.debug("Counter store increment failed for key '%s'", key, exc_info=True)
            return self._store_failure_result(policy, now)

        result = self._result_from_window(window, policy, now)
        RATE_LIMIT_DECISIONS.labels(policy=policy.name, outcome="allowed" if result.allowed else "denied").inc()
        return result

    async def status(self, key: str, policy: QuotaPolicy) -> RateLimitResult:
        """Report the current counters for ``key`` without counting a request."""
        now = self.now_ms()
        window_id, _, end = self._window_bounds(now, policy)
        try:
            window = await self._store.get(key)
        except Exception:
            logger.debug("Counter store read failed for key '%s'", key, exc_info=True)
            return self._store_failure_result(policy, now)

        if window is None or window.window_id != window_id:
            return RateLimitResult(
                allowed=True,
                limit=policy.max_requests,
                remaining=policy.max_requests,
                reset_at=end,
                policy=policy.name,
            )
        remaining = max(0, policy.max_requests - window.count)
        return RateLimitResult(
            allowed=remaining > 0,
            limit=policy.max_requests,
            remaining=remaining,
            reset_at=window.window_end,
            retry_after_ms=None if remaining > 0 else max(1, window.window_end - now),
            policy=policy.name,
        )

    async def check_all(self, caller_id: str, policies: Sequence[QuotaPolicy]) -> RateLimitResult:
        """Apply every policy in order; all must allow.

        The first denial stops further increments. Policies after it are
        inspected without counting so the reported ``retry_after_ms`` is the
        longest wait among all exhausted policies. When every policy allows,
        the result with the fewest remaining requests is returned.
        """
        if not policies:
            msg = "check_all requires at least one policy"
            raise ValueError(msg)

        allowed_results: list[RateLimitResult] = []
        for index, policy in enumerate(policies):
            result = await self.check(policy.key_for(caller_id), policy)
            if result.allowed:
                allowed_results.append(result)
                continue

            denial = result
            for later in policies[index + 1 :]:
                later_status = await self.status(later.key_for(caller_id), later)
                if not later_status.allowed and (later_status.retry_after_ms or 0) > (denial.retry_after_ms or 0):
                    denial = later_status
            logger.warning(
                "Rate limit exceeded for caller '%s' (policy=%s, retry_after_ms=%s)",
                caller_id,
                denial.policy,
                denial.retry_after_ms,
            )
            return denial

        return min(allowed_results, key=lambda r: r.remaining)

    async def reset(self, key: str) -> None:
        """Drop the counter for ``key``."""
        await self._store.delete(key)

    async def sweep(self) -> int:
        """Purge expired windows. Memory housekeeping only; expired windows are inert."""
        removed = await self._store.sweep(self.now_ms())
        if removed:
            RATE_LIMIT_WINDOWS_SWEPT.inc(removed)
            logger.debug("Swept %d expired rate limit windows", removed)
        return removed
