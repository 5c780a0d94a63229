"""Admin API — termination, flatbed override, and SIN reveal for onboarding trackers."""

import hmac
import logging
import uuid

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from db.database import get_db
from routers.common import success
from schemas.onboarding import FlatbedTrainingUpdate, TerminationAction, TrackerAdminResponse
from services.errors import Internal, Unauthorized
from services.onboarding import OnboardingService
from services.step_flow import status_of

router = APIRouter()
logger = logging.getLogger(__name__)


async def require_admin(
    x_admin_key: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.ADMIN_API_KEY:
        raise Internal("ADMIN_API_KEY env missing")
    if not x_admin_key or not hmac.compare_digest(x_admin_key.encode(), settings.ADMIN_API_KEY.encode()):
        raise Unauthorized("unauthorized")


def _to_response(tracker) -> dict:
    return TrackerAdminResponse(
        id=str(tracker.id),
        company_id=tracker.company_id,
        application_type=tracker.application_type,
        needs_flatbed_training=tracker.needs_flatbed_training,
        current_step=tracker.current_step,
        completed=tracker.completed,
        terminated=tracker.terminated,
        termination_type=tracker.termination_type,
        status=status_of(tracker).to_dict(),
    ).model_dump()


# ── PUT /api/admin/onboarding/{id}/termination ───────────

@router.put("/{tracker_id}/termination", dependencies=[Depends(require_admin)])
async def set_termination(
    tracker_id: uuid.UUID,
    data: TerminationAction,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Terminate (revoking every session) or restore a tracker."""
    service = OnboardingService(db, settings)
    tracker = await service.set_terminated(
        tracker_id,
        data.terminated,
        data.termination_type.value if data.termination_type else None,
    )
    await db.commit()
    return success(_to_response(tracker), message="Termination updated")


# ── PUT /api/admin/onboarding/{id}/flatbed-training ──────

@router.put("/{tracker_id}/flatbed-training", dependencies=[Depends(require_admin)])
async def set_flatbed_training(
    tracker_id: uuid.UUID,
    data: FlatbedTrainingUpdate,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    service = OnboardingService(db, settings)
    tracker = await service.set_needs_flatbed_training(tracker_id, data.needs_flatbed_training)
    await db.commit()
    return success(_to_response(tracker), message="Flatbed training updated")


# ── GET /api/admin/onboarding/{id}/identifier ────────────

@router.get("/{tracker_id}/identifier", dependencies=[Depends(require_admin)])
async def reveal_identifier(
    tracker_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Decrypt the stored SIN for an authorized reviewer."""
    service = OnboardingService(db, settings)
    sin = await service.reveal_identifier(tracker_id)
    logger.info("Identifier revealed: tracker_id=%s", tracker_id)
    return success({"sin": sin})
