"""APScheduler integration for the periodic rate limit window sweep.

Uses AsyncIOScheduler with IntervalTrigger.  No-ops gracefully if the sweep
interval is configured as 0.
"""

import contextlib
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from src.config import get_settings
from src.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def _sweep_job(limiter: RateLimiter) -> None:
    """Async job executed by the scheduler. Never raises into the scheduler."""
    try:
        await limiter.sweep()
    except Exception:
        logger.exception("Rate limit sweep failed")


def start_sweeper(limiter: RateLimiter) -> None:
    """Start the sweep job if an interval is configured."""
    global _scheduler  # noqa: PLW0603

    settings = get_settings()
    if settings.rate_limit_sweep_seconds <= 0:
        logger.info("Rate limit sweeper disabled (RATE_LIMIT_SWEEP_SECONDS=0)")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _sweep_job,
        trigger=IntervalTrigger(seconds=settings.rate_limit_sweep_seconds),
        args=[limiter],
        id="rate_limit_sweep",
        name="Rate limit window sweep",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Rate limit sweeper started every %ds", settings.rate_limit_sweep_seconds)


def stop_sweeper() -> None:
    """Gracefully shut down the sweeper if it is running."""
    global _scheduler  # noqa: PLW0603

    if _scheduler is not None:
        with contextlib.suppress(Exception):
            _scheduler.shutdown(wait=False)
        logger.info("Rate limit sweeper stopped")
        _scheduler = None
