"""Cron API — scheduled cleanup of abandoned onboarding applications."""

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from db.database import get_db, utcnow
from db.redis import get_redis
from services.blob_storage import BlobStorage, get_blob_storage
from services.cleanup import CleanupScheduler, authorize_trigger

router = APIRouter()
logger = logging.getLogger(__name__)


# ── POST /api/cron/cleanup-expired-onboarding ────────────

@router.post("/cleanup-expired-onboarding")
async def cleanup_expired_onboarding(
    limit: str | None = Query(None),
    secret: str | None = Query(None),
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    blob: BlobStorage = Depends(get_blob_storage),
    settings: Settings = Depends(get_settings),
):
    """Delete trackers whose resume deadline passed without completion."""
    authorize_trigger(settings, bearer=authorization, query_secret=secret)
    scheduler = CleanupScheduler(db, redis, blob, settings)
    summary = await scheduler.run(limit=limit)
    return {"ok": True, **summary}


# ── GET /api/cron/cleanup-expired-onboarding ─────────────

@router.get("/cleanup-expired-onboarding")
async def cleanup_health():
    return {"ok": True, "message": "Cleanup endpoint is up", "now": utcnow().isoformat()}
