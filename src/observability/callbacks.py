"""LangChain callback handler that records per-provider Prometheus metrics.

Create a fresh ``MetricsCallbackHandler`` per provider call and pass it via
``config["callbacks"]``.  The handler writes to module-level metric
singletons defined in :mod:`src.observability.metrics`.

All callback methods are wrapped in try/except — metrics collection must
never crash a request.
"""

import logging
from typing import Any
from uuid import UUID

from langchain_core.callbacks import BaseCallbackHandler
from langchain_core.outputs import ChatGeneration, LLMResult

from src.observability.metrics import (
    COST_PER_TOKEN,
    DEFAULT_COST_PER_TOKEN,
    LLM_CALLS_TOTAL,
    LLM_ESTIMATED_COST,
    LLM_TOKEN_USAGE,
)

logger = logging.getLogger(__name__)


def _token_counts(response: LLMResult) -> tuple[int, int, str]:
    """Return (prompt, completion, model) from whichever usage shape the provider reports."""
    llm_output = response.llm_output or {}
    model_name: str = llm_output.get("model_name", "") or llm_output.get("model", "")

    token_usage: dict[str, int] | None = llm_output.get("token_usage")
    if token_usage:
        return token_usage.get("prompt_tokens", 0), token_usage.get("completion_tokens", 0), model_name

    for generations in response.generations:
        for gen in generations:
            if isinstance(gen, ChatGeneration):
                usage = getattr(gen.message, "usage_metadata", None)
                if usage:
                    return usage.get("input_tokens", 0), usage.get("output_tokens", 0), model_name
    return 0, 0, model_name


class MetricsCallbackHandler(BaseCallbackHandler):
    """Captures LLM call outcomes and token usage for one provider."""

    def __init__(self, provider: str) -> None:
        super().__init__()
        self.provider = provider

    def on_llm_end(
        self,
        response: LLMResult,
        *,
        run_id: UUID,
        parent_run_id: UUID | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            LLM_CALLS_TOTAL.labels(provider=self.provider, status="success").inc()

            prompt_tokens, completion_tokens, model_name = _token_counts(response)
            if not prompt_tokens and not completion_tokens:
                return

            LLM_TOKEN_USAGE.labels(provider=self.provider, type="prompt").inc(prompt_tokens)
            LLM_TOKEN_USAGE.labels(provider=self.provider, type="completion").inc(completion_tokens)

            # Cost estimation
            pricing = DEFAULT_COST_PER_TOKEN
            for prefix, costs in COST_PER_TOKEN.items():
                if model_name.startswith(prefix):
                    pricing = costs
                    break

            cost = (prompt_tokens * pricing["prompt"]) + (completion_tokens * pricing["completion"])
            LLM_ESTIMATED_COST.labels(provider=self.provider).inc(cost)
        except Exception:
            logger.debug("metrics: on_llm_end failed", exc_info=True)

    def on_llm_error(
        self,
        error: BaseException,
        *,
        run_id: UUID,
        parent_run_id: UUID | None = None,
        **kwargs: Any,
    ) -> None:
        try:
            LLM_CALLS_TOTAL.labels(provider=self.provider, status="error").inc()
        except Exception:
            logger.debug("metrics: on_llm_error failed", exc_info=True)
