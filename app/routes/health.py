# app/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.features.team_health.pipeline.scoring.circuit_breaker import (
    BreakerState,
    ai_circuit_breaker,
)
from app.infrastructure.observability.logging import log_health_check
from app.services.redis_store import ping

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "team-pulse"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: Redis reachability, AI provider configuration and
    circuit breaker state. An open breaker is reported but does not make the
    service unready, since scoring and insights degrade instead of failing.
    """
    checks = {}
    overall_ok = True

    # 1) Redis health check
    t0 = time.time()
    try:
        redis_ok = await ping()
        latency_ms = round((time.time() - t0) * 1000, 1)
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": latency_ms,
            "connection_type": "native_pooled",
        }
        log_health_check("redis", bool(redis_ok), latency_ms)
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        checks["redis"] = {"ok": False, "error": error}
        log_health_check("redis", False, round((time.time() - t0) * 1000, 1), error=error)
        overall_ok = False

    # 2) AI provider configuration
    openai_ok = settings.openai_configured()
    checks["openai"] = {
        "ok": openai_ok,
        "model": settings.OPENAI_MODEL,
        "insights_model": settings.OPENAI_INSIGHTS_MODEL,
    }
    if not openai_ok:
        checks["openai"]["warning"] = "OPENAI_API_KEY not set, using neutral scores and rule-based insights"

    # 3) Circuit breaker
    snapshot = ai_circuit_breaker.snapshot()
    checks["circuit_breaker"] = {
        "ok": snapshot.state != BreakerState.OPEN,
        **snapshot.to_dict(),
    }

    checks["configuration"] = {
        "ok": True,
        "environment": settings.environment,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
