"""Health checks"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.config.redis import ping_redis

logger = logging.getLogger(__name__)
health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "availability-engine"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Health of the database and Redis"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        await ping_redis()
        checks["redis"] = "healthy"
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        checks["redis"] = f"unhealthy: {str(e)}"

    if all(status == "healthy" for key, status in checks.items() if key != "overall"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
