from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import httpx
import structlog

from invoicehub.config import settings
from invoicehub.database import get_db
from invoicehub.services.cache import cache

logger = structlog.get_logger()
router = APIRouter()


async def check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health_check_db_failed", error=str(exc))
        return "error"
    return "ok"


async def check_redis() -> str:
    if not cache.configured:
        return "not_configured"
    try:
        return "ok" if await cache.ping() else "error"
    except httpx.HTTPError as exc:
        logger.error("health_check_redis_failed", error=str(exc))
        return "error"


@router.get("/health")
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    """Database down means unhealthy (503); Redis down only degrades idempotency."""
    checks = {"db": await check_database(db), "redis": await check_redis()}
    if checks["db"] != "ok":
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif checks["redis"] == "error":
        overall = "degraded"
    else:
        overall = "healthy"
    return {"status": overall, "version": settings.APP_VERSION, "checks": checks}
