# engagement/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from engagement.config import settings
from engagement.db.pool import db_health_check
from engagement.infrastructure.observability.logging import log_health_check
from engagement.services.redis_client import fast_redis

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "engagement"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check covering the presence store and the database pool.
    """
    checks = {}
    overall_ok = True

    # 1) Redis
    t0 = time.time()
    redis_ok = await fast_redis.ping()
    checks["redis"] = {"ok": redis_ok, "latency_ms": round((time.time() - t0) * 1000, 1)}
    log_health_check("redis", redis_ok, checks["redis"]["latency_ms"])
    overall_ok = overall_ok and redis_ok

    # 2) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = bool(db_health.get("healthy", False))
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        pool_stats = db_health.get("pool_stats")
        if pool_stats:
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                }
            )
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    log_health_check(
        "database",
        checks["database"]["ok"],
        checks["database"]["latency_ms"],
        error=checks["database"].get("error"),
    )

    checks["configuration"] = {
        "environment": settings.environment,
        "email_transport": "resend" if settings.RESEND_API_KEY else "logging",
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
