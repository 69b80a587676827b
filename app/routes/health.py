# app/routes/health.py
"""
Liveness and readiness endpoints.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.services.infrastructure.encryption_service import validate_encryption_config
from app.services.infrastructure.redis_client import fast_redis

router = APIRouter()

SERVICE_NAME = "triage-pipeline"


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/readyz")
async def readyz():
    """
    Readiness check covering Redis, the database pool and required configuration.

    The encryption key is checked with a Fernet round trip, not just for presence.
    """
    checks = {}
    overall_ok = True

    # 1) Redis. The sync lock degrades to unlocked runs without it.
    t0 = time.time()
    redis_ok = await fast_redis.ping()
    checks["redis"] = {
        "ok": redis_ok,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    overall_ok = overall_ok and redis_ok

    # 2) Database pool
    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = db_health.get("healthy", False)
    checks["database"] = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        checks["database"].update(db_health["pool_stats"])
    if not is_healthy:
        checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    overall_ok = overall_ok and is_healthy

    # 3) Configuration
    config_issues = []
    if not settings.ENCRYPTION_KEY:
        config_issues.append("ENCRYPTION_KEY not set")
    elif not validate_encryption_config():
        config_issues.append("ENCRYPTION_KEY invalid")
    if not settings.OPENAI_API_KEY:
        config_issues.append("OPENAI_API_KEY not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
