"""FastAPI backend for the coaching request pipeline.

Provides HTTP endpoints so the coaching service can be consumed by web clients.
The service is built once at startup and shared across requests.
"""

import logging
import math
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from src.audit.store import SQLiteInteractionStore
from src.coaching.service import QuotaExceededError, build_service
from src.config import get_settings
from src.generation.prompts import context_for_sport
from src.observability.metrics import (
    APP_INFO,
    COMPONENT_HEALTHY,
    REQUEST_DURATION,
    REQUESTS_IN_PROGRESS,
    REQUESTS_TOTAL,
)
from src.ratelimit.models import SubscriptionTier
from src.ratelimit.sweeper import start_sweeper, stop_sweeper

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class AskRequest(BaseModel):
    """Request body for POST /ask."""

    question: str
    caller_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    session_id: str | None = None
    sport: str | None = None


class AskResponse(BaseModel):
    """Response body for POST /ask."""

    response: str
    session_id: str
    provider: str
    rate_limit_remaining: int


class ComponentHealth(BaseModel):
    """Health status of a single pipeline component."""

    name: str
    status: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    providers: list[str]
    components: list[ComponentHealth]


class ReviewFlag(BaseModel):
    id: int
    interaction_id: str
    caller_id: str
    session_id: str
    risk_level: str
    flags: list[str]
    reason: str
    flagged_at: str


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service once at startup, drain recordings on shutdown."""
    settings = get_settings()
    APP_INFO.info({"version": "0.1.0", "providers": settings.provider_order})

    logger.info("Building coaching service...")
    try:
        store = SQLiteInteractionStore.open(settings.audit_db_path)
        service = build_service(settings, store=store)
    except Exception:
        logger.exception("Failed to build coaching service at startup")
        raise
    app.state.store = store
    app.state.service = service
    logger.info("Coaching service ready")

    start_sweeper(service.limiter)
    yield
    stop_sweeper()
    await service.recorder.drain()
    store.close()
    logger.info("Shutting down coaching service")


app = FastAPI(title="AI Coaching Pipeline", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/ask", response_model=AskResponse)
async def ask(request: AskRequest) -> AskResponse | JSONResponse:
    """Send a question to the coaching service and get a response."""
    REQUESTS_IN_PROGRESS.labels(endpoint="/ask").inc()
    start = time.monotonic()

    try:
        result = await app.state.service.handle_detailed(
            request.caller_id,
            request.tier,
            request.question,
            context_for_sport(request.sport),
            session_id=request.session_id,
        )
    except QuotaExceededError as exc:
        REQUESTS_TOTAL.labels(endpoint="/ask", status="rate_limited").inc()
        REQUEST_DURATION.labels(endpoint="/ask").observe(time.monotonic() - start)
        return JSONResponse(
            status_code=429,
            content={"detail": str(exc), "policy": exc.policy, "retry_after_ms": exc.retry_after_ms},
            headers={
                "Retry-After": str(exc.retry_after_seconds),
                "X-RateLimit-Limit": str(exc.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(math.ceil(exc.reset_at_ms / 1000)),
            },
        )
    except Exception as exc:
        REQUESTS_TOTAL.labels(endpoint="/ask", status="error").inc()
        REQUEST_DURATION.labels(endpoint="/ask").observe(time.monotonic() - start)
        logger.exception("Coaching request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        REQUESTS_IN_PROGRESS.labels(endpoint="/ask").dec()

    duration = time.monotonic() - start
    REQUEST_DURATION.labels(endpoint="/ask").observe(duration)
    REQUESTS_TOTAL.labels(endpoint="/ask", status="success").inc()

    return AskResponse(
        response=result.text,
        session_id=result.session_id,
        provider=result.provider,
        rate_limit_remaining=result.rate_limit.remaining,
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check health of the service and its audit store."""
    service = app.state.service
    components: list[ComponentHealth] = []

    # --- Audit store ---
    try:
        await app.state.store.ping()
        components.append(ComponentHealth(name="audit_store", status="healthy"))
    except Exception as exc:
        components.append(ComponentHealth(name="audit_store", status="unhealthy", detail=str(exc)))

    # --- Generation providers ---
    providers = service.orchestrator.provider_names
    external = [name for name in providers if name != "fallback"]
    if external:
        components.append(ComponentHealth(name="providers", status="healthy", detail=", ".join(external)))
    else:
        components.append(
            ComponentHealth(
                name="providers",
                status="unhealthy",
                detail="no external provider configured; answering from local fallback only",
            )
        )

    for comp in components:
        COMPONENT_HEALTHY.labels(component=comp.name).set(1.0 if comp.status == "healthy" else 0.0)

    healthy_count = sum(1 for c in components if c.status == "healthy")
    if healthy_count == len(components):
        overall = "healthy"
    elif healthy_count == 0:
        overall = "unhealthy"
    else:
        overall = "degraded"

    return HealthResponse(status=overall, providers=providers, components=components)


@app.get("/review/flags", response_model=list[ReviewFlag])
async def review_flags(limit: int = 100) -> list[ReviewFlag]:
    """List interactions awaiting human review, most recent first."""
    try:
        records = await app.state.store.query_unreviewed_flags(limit)
    except Exception as exc:
        REQUESTS_TOTAL.labels(endpoint="/review/flags", status="error").inc()
        logger.exception("Failed to query review flags")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    REQUESTS_TOTAL.labels(endpoint="/review/flags", status="success").inc()
    return [ReviewFlag.model_validate(r) for r in records]
