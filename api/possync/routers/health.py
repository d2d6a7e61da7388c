import logging

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from possync.core.database import get_db
from possync.core.redis import get_redis
from possync.models.connection import STATUS_ACTIVE, PosConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/health/db")
async def health_db(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "ok", "database": "connected"}


@router.get("/health/redis")
def health_redis():
    """Broker and tenant locks share this Redis."""
    try:
        get_redis().ping()
    except RedisError as exc:
        logger.error("Redis health check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Redis unavailable")
    return {"status": "ok", "redis": "connected"}


@router.get("/health/sync")
async def health_sync(db: AsyncSession = Depends(get_db)):
    """Connection counts by status and the stalest active last_sync_time."""
    rows = await db.execute(
        select(PosConnection.status, func.count()).group_by(PosConnection.status)
    )
    oldest = await db.scalar(
        select(func.min(PosConnection.last_sync_time)).where(PosConnection.status == STATUS_ACTIVE)
    )
    return {
        "status": "ok",
        "connections": {status: n for status, n in rows.all()},
        "oldest_last_sync_time": oldest.isoformat() if oldest else None,
    }
