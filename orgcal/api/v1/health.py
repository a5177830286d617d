# orgcal/api/v1/health.py

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text

from orgcal.config import settings
from orgcal.db.base import engine

router = APIRouter(prefix="/v1", tags=["Health"])
log = logging.getLogger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def healthcheck(redis_check: bool = True) -> dict:
    """Database and (unless skipped) Redis reachability."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        log.exception("Health check: database unreachable")
        raise HTTPException(500, detail=f"DB error: {type(e).__name__}") from e

    if redis_check:
        client = aioredis.from_url(settings.REDIS_URL)
        try:
            await client.ping()
        except Exception as e:
            log.exception("Health check: redis unreachable")
            raise HTTPException(500, detail=f"Redis error: {type(e).__name__}") from e
        finally:
            await client.aclose()

    return {"status": "ok", "environment": settings.ENVIRONMENT}
