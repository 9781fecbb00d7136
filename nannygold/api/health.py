"""Health check endpoints"""

import logging
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.database import get_db
from nannygold.utils.dates import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": "NannyGold Booking API",
        "version": "0.1.0",
    }


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Readiness check including database, Redis and gateway configuration"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "payments": "configured" if settings.is_payments_configured() else "disabled",
        "email": "configured" if settings.is_email_configured() else "disabled",
    }

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = "healthy" if result.scalar() == 1 else "unhealthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"

    if settings.redis_url:
        try:
            client = aioredis.from_url(str(settings.redis_url))
            await client.ping()
            checks["redis"] = "healthy"
            await client.aclose()
        except (RedisError, OSError) as e:
            logger.error(f"Redis health check failed: {e}")
            checks["redis"] = "unhealthy"
    else:
        checks["redis"] = "disabled"

    overall_status = "healthy"
    if "unhealthy" in checks.values():
        overall_status = "degraded"
    if checks["database"] == "unhealthy":
        overall_status = "unhealthy"

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat(),
        "checks": checks,
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness endpoint"""
    return {"status": "alive"}
