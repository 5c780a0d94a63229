"""Resume API — emailed one-time codes that re-open an unfinished application."""

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from db.database import get_db
from db.redis import get_redis
from routers.common import success
from schemas.onboarding import ResumeConfirmRequest, ResumeSendCodeRequest
from services.resume_verification import ResumeVerificationService
from services.step_flow import build_tracker_context

router = APIRouter()
logger = logging.getLogger(__name__)


# ── POST /api/onboarding/resume/send-code ────────────────

@router.post("/send-code")
async def send_resume_code(
    data: ResumeSendCodeRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
):
    service = ResumeVerificationService(db, redis, settings)
    result = await service.request_code(data.identifier)
    return success(result, message="Verification code sent")


# ── POST /api/onboarding/resume/confirm-code ─────────────

@router.post("/confirm-code")
async def confirm_resume_code(
    data: ResumeConfirmRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
):
    """Redeem the code; on success the response carries a fresh session cookie."""
    service = ResumeVerificationService(db, redis, settings)
    result = await service.confirm_code(data.identifier, data.code)
    await db.commit()

    if result.is_completed:
        return success(
            {"isCompleted": True, "onboardingContext": build_tracker_context(result.tracker)},
            message="Onboarding already completed",
            cookie=result.cookie,
        )
    return success(
        {"isCompleted": False, "onboardingContext": build_tracker_context(result.tracker)},
        message="Verified",
        cookie=result.cookie,
    )
