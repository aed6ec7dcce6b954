"""
Deep Health Check Endpoints

Endpoints:
- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (database reachable, tables created)
- /health/deep  - Detailed diagnostics for debugging
"""

from fastapi import APIRouter, HTTPException, status
from datetime import datetime
from typing import Dict, Any
import asyncio
import time

from sqlalchemy import text

from app.core.config import settings
from app.core.database import get_session_local
from app.core.logging_config import logger


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    """Check database connectivity and that the schema exists"""
    start = time.time()
    try:
        async with get_session_local()() as session:
            await session.execute(text("SELECT 1"))
            try:
                await session.execute(text("SELECT COUNT(*) FROM users"))
                tables_ok = True
            except Exception:
                tables_ok = False

        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "tables_ready": tables_ok,
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "tables_ready": False,
            "error": str(e),
            "message": "Database connection failed"
        }


async def check_redis() -> Dict[str, Any]:
    """Redis backs rate limiting and the Celery broker"""
    start = time.time()
    try:
        import redis.asyncio as redis

        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        await client.ping()
        await client.close()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "message": "Redis connection successful"
        }
    except Exception as e:
        logger.warning(f"[HealthCheck] Redis check failed: {e}")
        return {
            "status": "degraded",
            "latency_ms": round((time.time() - start) * 1000, 2),
            "error": str(e),
            "message": "Redis unavailable - rate limits fall back to memory, scheduled jobs will not run"
        }


def check_email_config() -> Dict[str, Any]:
    if settings.USE_SENDGRID and settings.SENDGRID_API_KEY:
        return {"status": "healthy", "provider": "sendgrid", "configured": True}
    if settings.SMTP_USER and settings.SMTP_PASSWORD:
        return {"status": "healthy", "provider": "smtp", "configured": True, "host": settings.SMTP_HOST}
    return {
        "status": "degraded",
        "provider": "none",
        "configured": False,
        "message": "Email not configured - verification codes will not be delivered"
    }


def check_storage() -> Dict[str, Any]:
    return {
        "status": "healthy" if settings.AWS_ACCESS_KEY_ID else "degraded",
        "provider": "s3" if settings.USE_S3 else "minio",
        "bucket": settings.S3_BUCKET_NAME,
        "configured": bool(settings.AWS_ACCESS_KEY_ID),
    }


def check_stripe_config() -> Dict[str, Any]:
    return {
        "status": "healthy" if settings.stripe_configured else "degraded",
        "configured": settings.stripe_configured,
        "webhook_secret": bool(settings.STRIPE_WEBHOOK_SECRET),
    }


@router.get("")
async def health_check():
    """Load balancer check, no dependencies touched"""
    return {"status": "healthy", "service": "konnectsphere-backend"}


@router.get("/live")
async def liveness_check():
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness probe for load balancers.

    Returns 503 unless the database is reachable and its tables exist.
    """
    db_check = await check_database()
    is_ready = db_check.get("status") == "healthy" and db_check.get("tables_ready", False)

    response = {
        "status": "ready" if is_ready else "not_ready",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": {"database": db_check}
    }

    if not is_ready:
        logger.warning(f"[HealthCheck] Readiness check failed: {response}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=response)

    return response


@router.get("/deep")
async def deep_health_check():
    start_time = time.time()

    db_check, redis_check = await asyncio.gather(check_database(), check_redis())
    checks = {
        "database": db_check,
        "redis": redis_check,
        "email": check_email_config(),
        "storage": check_storage(),
        "stripe": check_stripe_config(),
    }

    statuses = [c.get("status", "unknown") for c in checks.values()]
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    response = {
        "status": overall,
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.ENVIRONMENT,
        "version": settings.APP_VERSION,
        "total_check_time_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }

    if overall == "unhealthy":
        logger.error(f"[HealthCheck] Deep check unhealthy: {response}")

    return response
