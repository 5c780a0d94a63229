"""Onboarding API — start an application, check step access, and submit steps."""

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from db.database import get_db
from routers.common import session_id_from, success
from schemas.onboarding import StartOnboardingRequest
from services.errors import NotFound
from services.onboarding import OnboardingService
from services.step_flow import StepPath, build_tracker_context

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_step(step: str) -> StepPath:
    try:
        return StepPath(step.strip("/"))
    except ValueError:
        raise NotFound(f"Unknown onboarding step: {step}") from None


# ── POST /api/onboarding ─────────────────────────────────

@router.post("/", status_code=201)
async def start_onboarding(
    data: StartOnboardingRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create the tracker from pre-qualifications + application page 1 and open a session."""
    service = OnboardingService(db, settings)
    result = await service.start(
        identifier=data.identifier,
        company_id=data.company_id,
        application_type=data.application_type.value if data.application_type else None,
        has_flatbed_experience=data.has_flatbed_experience,
        prequalifications=data.prequalifications,
        application_page1=data.application_page1,
    )
    await db.commit()
    return success(
        {"onboardingContext": build_tracker_context(result.tracker)},
        message="Onboarding started",
        status_code=201,
        cookie=result.cookie,
    )


# ── GET /api/onboarding/{id}/guard ───────────────────────

@router.get("/{tracker_id}/guard")
async def onboarding_guard(
    tracker_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Tell the client whether the session is live and where the driver is in the flow."""
    service = OnboardingService(db, settings)
    data, cookie = await service.guard(tracker_id, session_id_from(request, settings))
    await db.commit()
    return success(data, message="Guard OK", cookie=cookie)


# ── GET /api/onboarding/{id} ─────────────────────────────

@router.get("/{tracker_id}")
async def get_onboarding_context(
    tracker_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Tracker context for a session holder."""
    service = OnboardingService(db, settings)
    gate = await service.require_session(tracker_id, session_id_from(request, settings))
    await db.commit()
    return success(
        {"onboardingContext": build_tracker_context(gate.tracker)},
        cookie=gate.cookie,
    )


# ── POST /api/onboarding/{id}/steps/{step} ───────────────

@router.post("/{tracker_id}/steps/{step:path}")
async def submit_step(
    tracker_id: uuid.UUID,
    step: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Save a step's form data and advance the tracker."""
    step_path = _parse_step(step)
    service = OnboardingService(db, settings)
    gate = await service.submit_step(
        tracker_id, session_id_from(request, settings), step_path, payload,
    )
    await db.commit()
    return success(
        {"onboardingContext": build_tracker_context(gate.tracker)},
        message="Step saved",
        cookie=gate.cookie,
    )
