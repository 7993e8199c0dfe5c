# app/routes/health.py
"""
Health check endpoints with database pool and integration status.
"""

import time

from fastapi import APIRouter, Depends

from app.config import settings
from app.db.pool import db_health_check
from app.dependencies import BookingEngine, get_engine

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "booking-engine"}


@router.get("/readyz")
async def readyz(engine: BookingEngine = Depends(get_engine)):
    """
    Readiness check.

    The database is required only when SUPABASE_DB_URL is set; calendar,
    remote config and notifications degrade gracefully, so they are reported
    but never fail readiness.
    """
    checks = {}
    overall_ok = True

    # 1) Ledger storage
    t0 = time.time()
    if settings.database_configured():
        try:
            db_health = await db_health_check()
            is_healthy = db_health.get("healthy", False)
            checks["database"] = {
                "ok": is_healthy,
                "latency_ms": round((time.time() - t0) * 1000, 1),
            }
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
    else:
        checks["database"] = {"ok": True, "ledger": "in_memory"}

    # 2) Schedule configuration (never raises)
    config = await engine.resolver.get_schedule_config()
    checks["schedule"] = {
        "ok": True,
        "source": config.source,
        "time_zone": config.time_zone,
        "slot_minutes": config.slot_minutes,
    }

    # 3) Optional integrations
    checks["calendar"] = {"ok": True, "configured": engine.calendar is not None}
    checks["notifications"] = {"ok": True, "configured": engine.notifier is not None}

    return {
        "overall_ok": overall_ok,
        "checks": checks,
        "environment": settings.environment,
        "timestamp": time.time(),
    }


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
