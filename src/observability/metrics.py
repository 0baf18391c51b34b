"""Prometheus metric definitions for the coaching request pipeline.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 15.0, 20.0, 30.0, 60.0)
ATTEMPT_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 15.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "coaching_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "coaching_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

REQUESTS_IN_PROGRESS = Gauge(
    "coaching_requests_in_progress",
    "Number of requests currently being processed",
    labelnames=["endpoint"],
)

# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

RATE_LIMIT_DECISIONS = Counter(
    "coaching_rate_limit_decisions_total",
    "Rate limit decisions by policy and outcome",
    labelnames=["policy", "outcome"],
)

RATE_LIMIT_STORE_ERRORS = Counter(
    "coaching_rate_limit_store_errors_total",
    "Counter store failures, labelled by the fail mode that was applied",
    labelnames=["policy", "mode"],
)

RATE_LIMIT_WINDOWS_SWEPT = Counter(
    "coaching_rate_limit_windows_swept_total",
    "Expired rate limit windows removed by the sweeper",
)

# ---------------------------------------------------------------------------
# Generation (populated by the orchestrator)
# ---------------------------------------------------------------------------

PROVIDER_ATTEMPTS_TOTAL = Counter(
    "coaching_provider_attempts_total",
    "Provider attempts by outcome (success, failure, timeout)",
    labelnames=["provider", "outcome"],
)

PROVIDER_ATTEMPT_DURATION = Histogram(
    "coaching_provider_attempt_duration_seconds",
    "Duration of individual provider attempts in seconds",
    labelnames=["provider"],
    buckets=ATTEMPT_DURATION_BUCKETS,
)

GENERATIONS_TOTAL = Counter(
    "coaching_generations_total",
    "Completed generations by the provider that answered",
    labelnames=["provider"],
)

# ---------------------------------------------------------------------------
# LLM metrics (populated by callback handler)
# ---------------------------------------------------------------------------

LLM_CALLS_TOTAL = Counter(
    "coaching_llm_calls_total",
    "Total number of LLM calls",
    labelnames=["provider", "status"],
)

LLM_TOKEN_USAGE = Counter(
    "coaching_llm_token_usage",
    "Total LLM token usage",
    labelnames=["provider", "type"],
)

LLM_ESTIMATED_COST = Counter(
    "coaching_llm_estimated_cost_dollars",
    "Estimated cumulative LLM cost in USD",
    labelnames=["provider"],
)

# ---------------------------------------------------------------------------
# Interaction audit
# ---------------------------------------------------------------------------

INTERACTIONS_RECORDED = Counter(
    "coaching_interactions_recorded_total",
    "Interaction records persisted, by classified risk level",
    labelnames=["risk_level"],
)

REVIEW_FLAGS_CREATED = Counter(
    "coaching_review_flags_created_total",
    "Review flags raised for human compliance review",
)

RECORDER_FAILURES = Counter(
    "coaching_recorder_failures_total",
    "Swallowed interaction recorder failures by operation",
    labelnames=["operation"],
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "coaching_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "coaching_pipeline",
    "Coaching pipeline build information",
)

# ---------------------------------------------------------------------------
# Cost pricing (USD per token)
# ---------------------------------------------------------------------------

# Prices per token for cost estimation.  Keys are model name prefixes;
# the callback handler picks the best match.
COST_PER_TOKEN: dict[str, dict[str, float]] = {
    "gpt-4o-mini": {"prompt": 0.15 / 1_000_000, "completion": 0.60 / 1_000_000},
    "gpt-4o": {"prompt": 2.50 / 1_000_000, "completion": 10.00 / 1_000_000},
    "gpt-4-turbo": {"prompt": 10.00 / 1_000_000, "completion": 30.00 / 1_000_000},
    "claude-3-5-haiku": {"prompt": 0.80 / 1_000_000, "completion": 4.00 / 1_000_000},
    "claude-3-5-sonnet": {"prompt": 3.00 / 1_000_000, "completion": 15.00 / 1_000_000},
    "gemini-1.5-flash": {"prompt": 0.075 / 1_000_000, "completion": 0.30 / 1_000_000},
}
DEFAULT_COST_PER_TOKEN: dict[str, float] = {"prompt": 2.50 / 1_000_000, "completion": 10.00 / 1_000_000}
