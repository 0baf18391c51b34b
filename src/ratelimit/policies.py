"""Quota policy table: which named policies apply to each subscription tier.

The built-in table can be replaced by a YAML file (``QUOTA_POLICIES_PATH``)::

    policies:
      ai_requests: {window_ms: 60000, max_requests: 10}
      ai_requests_daily: {window_ms: 86400000, max_requests: 500}
    tiers:
      free: [ai_requests, ai_requests_daily]
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

from src.ratelimit.models import QuotaPolicy, SubscriptionTier

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class PolicySpec(BaseModel):
    window_ms: int = Field(..., gt=0)
    max_requests: int = Field(..., ge=0)
    fail_open: bool = False


class QuotaTableSpec(BaseModel):
    """Validated shape of a quota table file."""

    policies: dict[str, PolicySpec]
    tiers: dict[SubscriptionTier, list[str]]

    @model_validator(mode="after")
    def _check_references(self) -> "QuotaTableSpec":
        for tier, names in self.tiers.items():
            if not names:
                msg = f"Tier '{tier}' has no policies"
                raise ValueError(msg)
            unknown = [n for n in names if n not in self.policies]
            if unknown:
                msg = f"Tier '{tier}' references unknown policies: {', '.join(unknown)}"
                raise ValueError(msg)
        missing = [t.value for t in SubscriptionTier if t not in self.tiers]
        if missing:
            msg = f"No policies configured for tiers: {', '.join(missing)}"
            raise ValueError(msg)
        return self


DEFAULT_QUOTA_TABLE = QuotaTableSpec(
    policies={
        "ai_requests": PolicySpec(window_ms=MINUTE_MS, max_requests=10),
        "ai_requests_premium": PolicySpec(window_ms=MINUTE_MS, max_requests=30),
        "ai_requests_hourly": PolicySpec(window_ms=HOUR_MS, max_requests=100),
        "ai_requests_daily": PolicySpec(window_ms=DAY_MS, max_requests=500),
    },
    tiers={
        SubscriptionTier.FREE: ["ai_requests", "ai_requests_hourly", "ai_requests_daily"],
        SubscriptionTier.BASIC: ["ai_requests", "ai_requests_hourly", "ai_requests_daily"],
        SubscriptionTier.PRO: ["ai_requests_premium", "ai_requests_hourly", "ai_requests_daily"],
        SubscriptionTier.ELITE: ["ai_requests_premium", "ai_requests_hourly", "ai_requests_daily"],
    },
)


class QuotaTable:
    """Resolved tier → policies mapping."""

    def __init__(self, spec: QuotaTableSpec, *, fail_open: bool = False) -> None:
        self._policies = {
            name: QuotaPolicy(
                name=name,
                window_duration_ms=p.window_ms,
                max_requests=p.max_requests,
                fail_open=p.fail_open or fail_open,
            )
            for name, p in spec.policies.items()
        }
        self._tiers = {tier: [self._policies[n] for n in names] for tier, names in spec.tiers.items()}

    def policies_for(self, tier: SubscriptionTier | str) -> list[QuotaPolicy]:
        """Return the policies that all must pass for ``tier``.

        Raises:
            ValueError: If ``tier`` is not a known subscription tier.
        """
        return list(self._tiers[SubscriptionTier(tier)])

    def policy(self, name: str) -> QuotaPolicy:
        return self._policies[name]


def load_quota_table(path: str = "", *, fail_open: bool = False) -> QuotaTable:
    """Load the quota table from ``path``, or the built-in defaults if empty.

    Args:
        path: YAML file path. Empty string selects ``DEFAULT_QUOTA_TABLE``.
        fail_open: Force every policy to admit requests when the counter store fails.

    Raises:
        FileNotFoundError: If ``path`` is set but does not exist.
        ValueError: If the file fails validation.
    """
    if not path:
        return QuotaTable(DEFAULT_QUOTA_TABLE, fail_open=fail_open)

    file_path = Path(path)
    if not file_path.is_file():
        msg = f"Quota policy file not found: {file_path}"
        raise FileNotFoundError(msg)

    raw: Any = yaml.safe_load(file_path.read_text())
    try:
        spec = QuotaTableSpec.model_validate(raw)
    except Exception as exc:
        msg = f"Failed to parse {file_path.name}: {exc}"
        raise ValueError(msg) from exc

    logger.info("Loaded quota table from %s (%d policies)", file_path, len(spec.policies))
    return QuotaTable(spec, fail_open=fail_open)
