"""Progress Tracker — the one place a tracker's status and resume deadline are mutated."""

import logging
from datetime import datetime, timedelta

from config import Settings
from db.database import utcnow
from models.onboarding_tracker import OnboardingTracker
from services.step_flow import OnboardingStatus, StepPath, advance_progress, apply_status, fit_status_to_flow

logger = logging.getLogger(__name__)


def next_resume_expiry(settings: Settings, now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.RESUME_EXPIRY_DAYS)


def onboarding_expired(tracker: OnboardingTracker | None, now: datetime | None = None) -> bool:
    """True when the tracker is missing or its resume window has passed."""
    if tracker is None or tracker.resume_expires_at is None:
        return True
    return (now or utcnow()) > tracker.resume_expires_at


def record_step_submission(
    tracker: OnboardingTracker,
    step: StepPath,
    settings: Settings,
    now: datetime | None = None,
) -> OnboardingStatus:
    """
    Advance the tracker past `step` and slide its resume deadline.

    Safe to retry: a repeated or out-of-order submission never moves
    currentStep backward.
    """
    now = now or utcnow()
    was_completed = bool(tracker.completed)
    status = advance_progress(tracker, step)
    apply_status(tracker, status)
    tracker.resume_expires_at = next_resume_expiry(settings, now)

    if status.completed and not was_completed:
        tracker.completion_date = now
        logger.info("Onboarding completed: tracker_id=%s", tracker.id)

    logger.info(
        "Progress advanced: tracker_id=%s, submitted=%s, current=%s",
        tracker.id, step.value, status.current_step.value,
    )
    return status


def refit_progress(tracker: OnboardingTracker, now: datetime | None = None) -> OnboardingStatus:
    """Bring the status back inside the tracker's flow after its profile changed."""
    now = now or utcnow()
    was_completed = bool(tracker.completed)
    status = fit_status_to_flow(tracker)
    apply_status(tracker, status)

    if status.completed and not was_completed:
        tracker.completion_date = now
        logger.info("Onboarding completed by flow change: tracker_id=%s", tracker.id)
    return status
