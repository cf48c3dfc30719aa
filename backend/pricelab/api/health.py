"""Health check endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
import redis

from pricelab.database import get_db
from pricelab.services.redis_client import get_redis

router = APIRouter()


@router.get("/health")
@router.head("/health")
def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "pricelab-learning"}


@router.get("/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis)
):
    """
    Detailed health check including database and Redis connectivity.
    """
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown"
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis
    try:
        redis_client.ping()
        checks["redis"] = "healthy"
    except redis.RedisError as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    # Overall status
    overall_status = "healthy" if all(
        v == "healthy" for v in checks.values()
    ) else "degraded"

    return {
        "status": overall_status,
        "checks": checks
    }
