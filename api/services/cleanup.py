"""
Cleanup Scheduler — cascade-deletes abandoned onboarding applications.

Rules:
  - Selected: resume_expires_at < now AND completed is false, oldest deadline first
  - Completed trackers are never selected or deleted
  - Batch size is caller-supplied, clamped to [1, CLEANUP_HARD_CAP]
  - Each tracker is its own unit of work: one failure is logged, the batch continues
  - Re-running on an already-deleted tracker is a no-op
  - Expired or revoked sessions are purged on every run, for any tracker
"""

from __future__ import annotations

import hmac
import logging
import time
import uuid
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.database import utcnow
from models.onboarding_form import OnboardingForm
from models.onboarding_tracker import OnboardingTracker
from services.blob_storage import BlobStorage
from services.errors import Internal, Unauthorized
from services.resume_verification import PURPOSE_RESUME, make_code_key
from services.sessions import SessionManager
from services.trackers import collect_blob_keys, form_ids

logger = logging.getLogger(__name__)

CODE_PURPOSES = (PURPOSE_RESUME,)


def authorize_trigger(settings: Settings, bearer: str | None = None, query_secret: str | None = None) -> None:
    """Accept 'Authorization: Bearer <CRON_SECRET>' or ?secret=<CRON_SECRET>."""
    if not settings.CRON_SECRET:
        raise Internal("CRON_SECRET env missing")

    supplied = None
    if bearer and bearer.startswith("Bearer "):
        supplied = bearer[len("Bearer "):]
    elif query_secret:
        supplied = query_secret

    if not supplied or not hmac.compare_digest(supplied.encode(), settings.CRON_SECRET.encode()):
        raise Unauthorized("unauthorized")


def clamp_limit(raw: Any, settings: Settings) -> int:
    try:
        value = int(raw) if raw is not None else settings.CLEANUP_DEFAULT_LIMIT
    except (TypeError, ValueError):
        value = settings.CLEANUP_DEFAULT_LIMIT
    return min(max(1, value), settings.CLEANUP_HARD_CAP)


class CleanupScheduler:
    def __init__(
        self,
        db: AsyncSession,
        redis: aioredis.Redis,
        blob: BlobStorage,
        settings: Settings,
    ):
        self.db = db
        self.redis = redis
        self.blob = blob
        self.settings = settings

    async def find_expired(self, now: datetime, limit: int) -> list[tuple[uuid.UUID, dict]]:
        result = await self.db.execute(
            select(OnboardingTracker.id, OnboardingTracker.forms)
            .where(
                OnboardingTracker.completed.is_(False),
                OnboardingTracker.resume_expires_at < now,
            )
            .order_by(OnboardingTracker.resume_expires_at.asc())
            .limit(limit)
        )
        return [(row[0], row[1] or {}) for row in result.all()]

    async def delete_tracker_cascade(self, tracker_id: uuid.UUID, forms: dict) -> bool:
        """
        Delete one tracker with its forms, uploaded files, sessions and codes.

        Returns False when there was nothing to delete (already gone or completed).
        Any exception leaves the tracker in place for the next run.
        """
        removed = await self.db.execute(
            delete(OnboardingTracker).where(
                OnboardingTracker.id == tracker_id,
                OnboardingTracker.completed.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        if not removed.rowcount:
            await self.db.rollback()
            return False

        ids = form_ids(forms)
        if ids:
            rows = await self.db.execute(
                select(OnboardingForm.data).where(OnboardingForm.id.in_(ids))
            )
            blob_keys: list[str] = []
            for (data,) in rows.all():
                blob_keys.extend(collect_blob_keys(data))

            failed = await self.blob.delete_keys(blob_keys)
            if failed:
                logger.warning(
                    "Cleanup left %d blob(s) behind: tracker_id=%s", len(failed), tracker_id,
                )
            await self.db.execute(
                delete(OnboardingForm)
                .where(OnboardingForm.id.in_(ids))
                .execution_options(synchronize_session=False)
            )

        await SessionManager(self.db, self.settings).delete_for_tracker(tracker_id)
        await self.db.commit()

        # Codes also expire on their own TTL
        try:
            await self.redis.delete(*[make_code_key(tracker_id, p) for p in CODE_PURPOSES])
        except Exception as e:
            logger.warning("Cleanup could not delete codes: tracker_id=%s, error=%s", tracker_id, str(e))
        return True

    async def run(self, now: datetime | None = None, limit: Any = None) -> dict[str, Any]:
        now = now or utcnow()
        limit_applied = clamp_limit(limit, self.settings)
        started = time.monotonic()

        candidates = await self.find_expired(now, limit_applied)
        deleted_ids: list[str] = []
        failed_ids: list[str] = []

        for tracker_id, forms in candidates:
            try:
                if await self.delete_tracker_cascade(tracker_id, forms):
                    deleted_ids.append(str(tracker_id))
            except Exception:
                logger.exception("Cleanup failed for tracker_id=%s", tracker_id)
                await self.db.rollback()
                failed_ids.append(str(tracker_id))

        sessions_purged = await SessionManager(self.db, self.settings).purge_stale(now)
        await self.db.commit()

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Cleanup run: scanned=%d, deleted=%d, failed=%d, sessions_purged=%d, limit=%d, duration_ms=%d",
            len(candidates), len(deleted_ids), len(failed_ids), sessions_purged, limit_applied, duration_ms,
        )
        return {
            "ranAt": now.isoformat(),
            "limitApplied": limit_applied,
            "scanned": len(candidates),
            "deletedCount": len(deleted_ids),
            "failed": failed_ids,
            "trackerIds": deleted_ids,
            "sessionsPurged": sessions_purged,
            "durationMs": duration_ms,
            "remainingHint": (
                "More may remain (processed up to limit)"
                if len(candidates) == limit_applied
                else "Likely none beyond this batch"
            ),
        }
