"""Data models for quota policies, counter windows, and limiter decisions."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum


class SubscriptionTier(StrEnum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ELITE = "elite"


class RateLimitStoreError(Exception):
    """Raised by a counter store when it cannot be read or written."""


@dataclass(frozen=True)
class QuotaPolicy:
    """An immutable quota: at most ``max_requests`` per fixed window.

    ``key_fn`` maps a caller identity to the counter key. The default prefixes
    the caller with the policy name so that several policies can count the
    same caller independently.
    """

    name: str
    window_duration_ms: int
    max_requests: int
    fail_open: bool = False
    key_fn: Callable[[str], str] | None = field(default=None, compare=False)

    def key_for(self, caller_id: str) -> str:
        if self.key_fn is not None:
            return self.key_fn(caller_id)
        return f"{self.name}:{caller_id}"


@dataclass
class RateLimitWindow:
    """Counter for one (key, window) pair. ``window_id`` is floor(now / duration)."""

    key: str
    window_id: int
    count: int
    window_start: int  # epoch ms
    window_end: int  # epoch ms, exclusive


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a quota check, shaped for client back-off."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch ms
    retry_after_ms: int | None = None
    policy: str = ""
