"""Tests for starting onboarding, step submission and admin overrides."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from conftest import SIN, SIN_DIGITS, T0, start_tracker
from models.onboarding_form import OnboardingForm
from models.onboarding_tracker import OnboardingTracker
from services.cleanup import CleanupScheduler
from services.errors import Conflict, NotFound, SessionRequired, ValidationError
from services.identity_codec import hash_identifier
from services.onboarding import OnboardingService
from services.step_flow import StepPath, build_flow
from services.trackers import get_form


@pytest.mark.asyncio
async def test_start_creates_tracker_and_session(db, settings):
    result = await start_tracker(db, settings)
    tracker = result.tracker

    assert tracker.identifier_hash == hash_identifier(SIN_DIGITS, settings.HASH_SECRET)
    assert SIN_DIGITS not in tracker.identifier_encrypted
    assert tracker.current_step == StepPath.APPLICATION_PAGE_2.value
    assert tracker.completed_steps == ["prequalifications", "application-form/page-1"]
    assert tracker.resume_expires_at == T0 + timedelta(days=14)
    assert result.cookie.name == "OD_SESS"
    assert result.cookie.value


@pytest.mark.asyncio
async def test_start_stores_encrypted_sin_in_page1(db, settings):
    result = await start_tracker(db, settings)
    form = await get_form(db, result.tracker, "driver_application")

    page1 = form.data["page1"]
    assert "sin" not in page1
    assert page1["sinEncrypted"] == result.tracker.identifier_encrypted
    assert page1["email"] == "driver@example.com"


@pytest.mark.asyncio
async def test_start_duplicate_sin_conflicts(db, settings):
    await start_tracker(db, settings)
    with pytest.raises(Conflict):
        await start_tracker(db, settings, sin=SIN_DIGITS)


@pytest.mark.asyncio
async def test_start_requires_email(db, settings):
    with pytest.raises(ValidationError):
        await start_tracker(db, settings, email="")


@pytest.mark.asyncio
async def test_start_invalid_sin(db, settings):
    with pytest.raises(ValidationError):
        await start_tracker(db, settings, sin="12345")


@pytest.mark.asyncio
async def test_flatbed_applicant_needs_training(db, settings):
    result = await start_tracker(db, settings, application_type="FLAT_BED")
    assert result.tracker.needs_flatbed_training is True


@pytest.mark.asyncio
async def test_submit_step_advances_and_saves(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)
    later = T0 + timedelta(days=3)

    gate = await service.submit_step(
        result.tracker.id, result.cookie.value, StepPath.APPLICATION_PAGE_2,
        {"addresses": [{"city": "Calgary"}]}, now=later,
    )
    await db.commit()

    assert gate.tracker.current_step == StepPath.APPLICATION_PAGE_3.value
    assert gate.tracker.resume_expires_at == later + timedelta(days=14)
    form = await get_form(db, gate.tracker, "driver_application")
    assert form.data["page2"] == {"addresses": [{"city": "Calgary"}]}
    assert "page1" in form.data


@pytest.mark.asyncio
async def test_submit_unreached_step_rejected(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)

    with pytest.raises(ValidationError) as exc:
        await service.submit_step(
            result.tracker.id, result.cookie.value, StepPath.DRUG_TEST, {}, now=T0,
        )
    assert exc.value.meta["reason"] == "STEP_NOT_REACHED"


@pytest.mark.asyncio
async def test_submit_without_session(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)

    with pytest.raises(SessionRequired) as exc:
        await service.submit_step(result.tracker.id, None, StepPath.APPLICATION_PAGE_2, {}, now=T0)
    assert exc.value.clear_cookie is True


@pytest.mark.asyncio
async def test_walk_to_completion(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)
    tracker = result.tracker

    for step in build_flow(tracker)[2:]:
        await service.submit_step(tracker.id, result.cookie.value, step, {"step": step.value}, now=T0)
    await db.commit()

    assert tracker.completed is True
    assert tracker.completion_date == T0
    assert tracker.current_step == StepPath.DRUG_TEST.value

    # Completed trackers no longer accept step submissions
    with pytest.raises(SessionRequired) as exc:
        await service.submit_step(tracker.id, result.cookie.value, StepPath.DRUG_TEST, {}, now=T0)
    assert exc.value.reason == "COMPLETED"

    forms = (await db.execute(select(OnboardingForm.kind))).scalars().all()
    assert sorted(forms) == sorted(tracker.forms.keys())


@pytest.mark.asyncio
async def test_expired_tracker_requires_resume(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)

    with pytest.raises(SessionRequired) as exc:
        # session still valid, tracker window passed
        result.tracker.resume_expires_at = T0 + timedelta(minutes=1)
        await service.submit_step(
            result.tracker.id, result.cookie.value, StepPath.APPLICATION_PAGE_2, {},
            now=T0 + timedelta(minutes=2),
        )
    assert exc.value.reason == "ONBOARDING_EXPIRED"


@pytest.mark.asyncio
async def test_guard_reports_session_state(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)

    data, cookie = await service.guard(result.tracker.id, result.cookie.value, now=T0)
    assert data["sessionOk"] is True
    assert data["completed"] is False
    assert data["tracker"]["status"]["currentStep"] == "application-form/page-2"
    assert cookie.value == result.cookie.value

    data, cookie = await service.guard(result.tracker.id, "stale-cookie", now=T0)
    assert data["sessionOk"] is False
    assert cookie.value is None

    data, cookie = await service.guard(result.tracker.id, None, now=T0)
    assert data["sessionOk"] is False
    assert cookie is None


@pytest.mark.asyncio
async def test_terminate_revokes_sessions(db, settings):
    result = await start_tracker(db, settings)
    service = OnboardingService(db, settings)

    tracker = await service.set_terminated(result.tracker.id, True, "RESIGNED", now=T0)
    assert tracker.terminated is True
    assert tracker.termination_type == "RESIGNED"

    with pytest.raises(NotFound):
        await service.guard(result.tracker.id, result.cookie.value, now=T0)

    restored = await service.set_terminated(result.tracker.id, False)
    assert restored.terminated is False
    assert restored.termination_date is None
    with pytest.raises(SessionRequired) as exc:
        await service.require_session(result.tracker.id, result.cookie.value, now=T0)
    assert exc.value.reason == SessionRequired.REVOKED


@pytest.mark.asyncio
async def test_reveal_identifier(db, settings):
    result = await start_tracker(db, settings, sin=SIN)
    service = OnboardingService(db, settings)
    assert await service.reveal_identifier(result.tracker.id) == SIN_DIGITS


@pytest.mark.asyncio
async def test_start_unknown_company(db, settings):
    with pytest.raises(ValidationError):
        await OnboardingService(db, settings).start(
            identifier=SIN,
            company_id="no-such-carrier",
            application_type="FLAT_BED",
            has_flatbed_experience=False,
            prequalifications={},
            application_page1={"email": "driver@example.com"},
            now=T0,
        )


@pytest.mark.asyncio
async def test_start_losing_duplicate_race_conflicts(db, settings):
    await start_tracker(db, settings)

    # The duplicate check misses a start committed concurrently; the unique index catches it
    with patch("services.onboarding.get_tracker_by_identifier_hash", new=AsyncMock(return_value=None)):
        with pytest.raises(Conflict):
            await start_tracker(db, settings)

    count = (await db.execute(select(func.count()).select_from(OnboardingTracker))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_dropping_flatbed_after_drug_test_completes_tracker(db, redis, settings):
    result = await start_tracker(db, settings, application_type="FLAT_BED")
    tracker = result.tracker
    tracker_id = tracker.id
    assert tracker.needs_flatbed_training is True
    service = OnboardingService(db, settings)

    for step in build_flow(tracker)[2:-1]:
        await service.submit_step(tracker_id, result.cookie.value, step, {}, now=T0)
    await db.commit()
    assert tracker.current_step == StepPath.FLATBED_TRAINING.value
    assert tracker.completed is False

    later = T0 + timedelta(hours=1)
    await service.set_needs_flatbed_training(tracker_id, False, now=later)
    await db.commit()

    assert tracker.current_step == StepPath.DRUG_TEST.value
    assert tracker.completed is True
    assert tracker.completion_date == later
    assert StepPath.FLATBED_TRAINING.value not in tracker.completed_steps

    blob = AsyncMock()
    blob.delete_keys.return_value = []
    summary = await CleanupScheduler(db, redis, blob, settings).run(now=T0 + timedelta(days=60))
    assert summary["deletedCount"] == 0
    count = (await db.execute(select(func.count()).select_from(OnboardingTracker))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_dropping_flatbed_mid_flow_keeps_position(db, settings):
    result = await start_tracker(db, settings, application_type="FLAT_BED")
    service = OnboardingService(db, settings)

    tracker = await service.set_needs_flatbed_training(result.tracker.id, False, now=T0)
    assert tracker.current_step == StepPath.APPLICATION_PAGE_2.value
    assert tracker.completed is False

    gate = await service.submit_step(
        tracker.id, result.cookie.value, StepPath.APPLICATION_PAGE_2, {}, now=T0,
    )
    assert gate.tracker.current_step == StepPath.APPLICATION_PAGE_3.value
