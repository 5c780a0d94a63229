"""Onboarding Service — start an application, gate step pages, and record step submissions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.database import utcnow
from models.onboarding_tracker import OnboardingTracker
from services.companies import get_company
from services.errors import Conflict, NotFound, SessionRequired, ValidationError
from services.identity_codec import decrypt_identifier, encrypt_identifier, hash_identifier, validate_identifier
from services.progress import next_resume_expiry, onboarding_expired, record_step_submission, refit_progress
from services.sessions import CookieInstruction, SessionManager, clear_cookie_instruction
from services.step_flow import (
    StepPath,
    apply_status,
    build_tracker_context,
    has_reached_step,
    initial_status,
    needs_flatbed_training,
)
from services.trackers import get_tracker, get_tracker_by_identifier_hash, save_step_form

logger = logging.getLogger(__name__)


@dataclass
class GateResult:
    tracker: OnboardingTracker
    cookie: CookieInstruction


class OnboardingService:
    def __init__(self, db: AsyncSession, settings: Settings, sessions: SessionManager | None = None):
        self.db = db
        self.settings = settings
        self.sessions = sessions or SessionManager(db, settings)

    # ── Start ──────────────────────────────────────────────

    async def start(
        self,
        *,
        identifier: str,
        company_id: str,
        application_type: str | None,
        has_flatbed_experience: bool,
        prequalifications: dict[str, Any],
        application_page1: dict[str, Any],
        now: datetime | None = None,
    ) -> GateResult:
        """
        Create the tracker from the pre-qualification + application page 1 submission.

        The SIN is stored only as HMAC (lookup) and ciphertext (redisplay).
        """
        now = now or utcnow()
        sin = validate_identifier(identifier)
        if not str(application_page1.get("email") or "").strip():
            raise ValidationError("Email is required")
        if get_company(company_id) is None:
            raise ValidationError("Unknown company")

        identifier_hash = hash_identifier(sin, self.settings.HASH_SECRET)
        if await get_tracker_by_identifier_hash(self.db, identifier_hash):
            raise Conflict("Application with this SIN already exists")

        encrypted = encrypt_identifier(sin, self.settings.ENC_KEY)
        tracker = OnboardingTracker(
            id=uuid.uuid4(),
            identifier_hash=identifier_hash,
            identifier_encrypted=encrypted,
            company_id=company_id,
            application_type=application_type,
            needs_flatbed_training=needs_flatbed_training(
                company_id, application_type, has_flatbed_experience,
            ),
            resume_expires_at=next_resume_expiry(self.settings, now),
            terminated=False,
            forms={},
            created_at=now,
            updated_at=now,
        )
        apply_status(tracker, initial_status())
        self.db.add(tracker)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent start for the same SIN
            await self.db.rollback()
            raise Conflict("Application with this SIN already exists")

        page1 = {k: v for k, v in application_page1.items() if k not in ("sin", "identifier")}
        page1["sinEncrypted"] = encrypted

        await save_step_form(self.db, tracker, StepPath.PRE_QUALIFICATIONS, dict(prequalifications))
        record_step_submission(tracker, StepPath.PRE_QUALIFICATIONS, self.settings, now)
        await save_step_form(self.db, tracker, StepPath.APPLICATION_PAGE_1, page1)
        record_step_submission(tracker, StepPath.APPLICATION_PAGE_1, self.settings, now)

        session = await self.sessions.create_session(tracker.id, now=now)
        logger.info(
            "Onboarding started: tracker_id=%s, company=%s, flatbed=%s",
            tracker.id, company_id, tracker.needs_flatbed_training,
        )
        return GateResult(tracker=tracker, cookie=self.sessions.cookie_for(session))

    # ── Gate ───────────────────────────────────────────────

    async def require_session(
        self,
        tracker_id: uuid.UUID,
        session_id: str | None,
        now: datetime | None = None,
        lock: bool = False,
    ) -> GateResult:
        """
        Validate (and slide) the session, then check the tracker may continue.

        Raises SessionRequired (cookie cleared) for every failure.
        """
        now = now or utcnow()
        validated = await self.sessions.validate(session_id, tracker_id, now=now)

        tracker = await get_tracker(self.db, tracker_id, for_update=lock)
        if tracker is None:
            raise SessionRequired("Onboarding record not found", reason="TRACKER_NOT_FOUND")
        if tracker.terminated:
            raise SessionRequired("Onboarding terminated", reason="TERMINATED")
        if onboarding_expired(tracker, now):
            raise SessionRequired("Onboarding time expired", reason="ONBOARDING_EXPIRED")
        if tracker.completed:
            raise SessionRequired("Onboarding already completed", reason="COMPLETED")

        return GateResult(tracker=tracker, cookie=validated.refresh_cookie)

    async def guard(
        self,
        tracker_id: uuid.UUID,
        session_id: str | None,
        now: datetime | None = None,
    ) -> tuple[dict[str, Any], CookieInstruction | None]:
        """Routing check: never fails on a bad session, reports sessionOk instead."""
        now = now or utcnow()
        tracker = await get_tracker(self.db, tracker_id)
        if tracker is None or tracker.terminated:
            raise NotFound("Onboarding document not found")
        if onboarding_expired(tracker, now):
            raise ValidationError("Onboarding session expired")

        cookie: CookieInstruction | None = None
        session_ok = False
        try:
            gate = await self.require_session(tracker_id, session_id, now=now)
            session_ok = True
            cookie = gate.cookie
        except SessionRequired as err:
            logger.info("Guard without session: tracker_id=%s, reason=%s", tracker_id, err.reason)
            cookie = clear_cookie_instruction(self.settings) if session_id else None

        ctx = build_tracker_context(tracker)
        return {
            "completed": bool(tracker.completed),
            "sessionOk": session_ok,
            "tracker": {
                "id": ctx["id"],
                "needsFlatbedTraining": ctx["needsFlatbedTraining"],
                "status": ctx["status"],
            },
        }, cookie

    # ── Step submission ────────────────────────────────────

    async def submit_step(
        self,
        tracker_id: uuid.UUID,
        session_id: str | None,
        step: StepPath,
        payload: dict[str, Any],
        now: datetime | None = None,
    ) -> GateResult:
        now = now or utcnow()
        gate = await self.require_session(tracker_id, session_id, now=now, lock=True)
        tracker = gate.tracker

        if not has_reached_step(tracker, step):
            raise ValidationError(
                "Please complete the previous steps first",
                reason="STEP_NOT_REACHED",
                meta={"currentStep": tracker.current_step, "requestedStep": step.value},
            )

        await save_step_form(self.db, tracker, step, payload)
        record_step_submission(tracker, step, self.settings, now)
        await self.db.flush()
        return gate

    # ── Admin ──────────────────────────────────────────────

    async def _admin_tracker(self, tracker_id: uuid.UUID) -> OnboardingTracker:
        tracker = await get_tracker(self.db, tracker_id)
        if tracker is None:
            raise NotFound("Onboarding document not found")
        return tracker

    async def set_terminated(
        self,
        tracker_id: uuid.UUID,
        terminated: bool,
        termination_type: str | None = None,
        now: datetime | None = None,
    ) -> OnboardingTracker:
        tracker = await self._admin_tracker(tracker_id)
        tracker.terminated = terminated
        tracker.termination_type = termination_type if terminated else None
        tracker.termination_date = (now or utcnow()) if terminated else None
        if terminated:
            await self.sessions.revoke_all_for_tracker(tracker.id)
        await self.db.flush()
        logger.info("Tracker terminated=%s: tracker_id=%s, type=%s", terminated, tracker_id, termination_type)
        return tracker

    async def set_needs_flatbed_training(
        self,
        tracker_id: uuid.UUID,
        value: bool,
        now: datetime | None = None,
    ) -> OnboardingTracker:
        tracker = await self._admin_tracker(tracker_id)
        tracker.needs_flatbed_training = value
        refit_progress(tracker, now)
        logger.info(
            "Flatbed training set=%s: tracker_id=%s, current=%s, completed=%s",
            value, tracker_id, tracker.current_step, tracker.completed,
        )
        await self.db.flush()
        return tracker

    async def reveal_identifier(self, tracker_id: uuid.UUID) -> str:
        tracker = await self._admin_tracker(tracker_id)
        return decrypt_identifier(tracker.identifier_encrypted, self.settings.ENC_KEY)
