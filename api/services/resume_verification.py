"""
Resume Verification Service — one-time codes that let a driver re-open their application.

Security:
  - Tracker looked up by HMAC of the SIN, never the SIN itself
  - 6-digit numeric codes, hashed with bcrypt before storage
  - One code per (tracker, purpose): Redis key otp:{purpose}:{tracker_id}
  - 10-minute TTL, 5 attempts, 60-second resend window
  - Code and email are bound to the SIN hash and the email on file
"""

from __future__ import annotations

import logging
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import bcrypt
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.database import utcnow
from models.onboarding_tracker import OnboardingTracker
from services import mailer
from services.errors import (
    CodeExpired,
    Gone,
    InvalidCode,
    NotFound,
    RateLimited,
    TooManyAttempts,
    ValidationError,
)
from services.identity_codec import hash_email, hash_identifier, mask_email, validate_identifier
from services.progress import next_resume_expiry, onboarding_expired
from services.sessions import CookieInstruction, SessionManager, clear_cookie_instruction
from services.step_flow import build_tracker_context
from services.trackers import get_tracker_by_identifier_hash, load_driver_contact

logger = logging.getLogger(__name__)

PURPOSE_RESUME = "resume"
_CODE_RE = re.compile(r"^\d{6}$")

SendCode = Callable[..., Awaitable[bool]]


def make_code_key(tracker_id: Any, purpose: str = PURPOSE_RESUME) -> str:
    return f"otp:{purpose}:{tracker_id}"


def generate_code() -> str:
    return f"{secrets.randbelow(1000000):06d}"


@dataclass
class ResumeResult:
    tracker: OnboardingTracker
    is_completed: bool
    cookie: CookieInstruction


class ResumeVerificationService:
    def __init__(
        self,
        db: AsyncSession,
        redis: aioredis.Redis,
        settings: Settings,
        sessions: SessionManager | None = None,
        send_code: SendCode | None = None,
    ):
        self.db = db
        self.redis = redis
        self.settings = settings
        self.sessions = sessions or SessionManager(db, settings)
        self.send_code = send_code or mailer.send_resume_code_email

    # ── Shared lookups ─────────────────────────────────────

    async def _resumable_tracker(self, identifier: str, now: datetime) -> tuple[OnboardingTracker, str]:
        sin = validate_identifier(identifier)
        identifier_hash = hash_identifier(sin, self.settings.HASH_SECRET)
        tracker = await get_tracker_by_identifier_hash(self.db, identifier_hash)

        if tracker is None or tracker.terminated:
            raise NotFound("No onboarding record found", clear_cookie=True)
        if onboarding_expired(tracker, now):
            raise Gone("Resume link has expired", reason="ONBOARDING_EXPIRED", clear_cookie=True)
        return tracker, identifier_hash

    # ── Request ────────────────────────────────────────────

    async def request_code(self, identifier: str, now: datetime | None = None) -> dict[str, Any]:
        """
        Issue a resume code and email it to the address on file.

        Raises:
            ValidationError, NotFound, Gone, RateLimited
        """
        now = now or utcnow()
        tracker, identifier_hash = await self._resumable_tracker(identifier, now)

        contact = await load_driver_contact(self.db, tracker)
        if not contact["email"]:
            raise NotFound("No email on file")

        key = make_code_key(tracker.id)
        window = self.settings.VERIFICATION_RESEND_WINDOW_SECONDS
        existing = await self.redis.hgetall(key)
        if existing and existing.get("created_at"):
            elapsed = (now - datetime.fromisoformat(existing["created_at"])).total_seconds()
            if elapsed < window:
                retry_after = max(1, math.ceil(window - elapsed))
                raise RateLimited(
                    "Please wait before requesting a new code.",
                    retry_after_seconds=retry_after,
                )
            # Outside the window: replace the previous code
            await self.redis.delete(key)

        code = generate_code()
        ttl_minutes = self.settings.VERIFICATION_CODE_TTL_MINUTES
        expires_at = now + timedelta(minutes=ttl_minutes)

        await self.redis.hset(key, mapping={
            "tracker_id": str(tracker.id),
            "identifier_hash": identifier_hash,
            "email_hash": hash_email(contact["email"], self.settings.HASH_SECRET),
            "code_hash": bcrypt.hashpw(code.encode(), bcrypt.gensalt()).decode(),
            "purpose": PURPOSE_RESUME,
            "attempts": "0",
            "max_attempts": str(self.settings.VERIFICATION_CODE_MAX_ATTEMPTS),
            "created_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
        })
        await self.redis.expire(key, ttl_minutes * 60)
        logger.info("Resume code issued: tracker_id=%s", tracker.id)

        try:
            sent = await self.send_code(
                self.settings,
                to_email=contact["email"],
                code=code,
                company_id=tracker.company_id,
                first_name=contact["first_name"],
                last_name=contact["last_name"],
            )
            if not sent:
                logger.warning("Resume code email not delivered: tracker_id=%s", tracker.id)
        except Exception:
            logger.exception("Failed to send resume code email: tracker_id=%s", tracker.id)

        return {
            "onboardingContext": build_tracker_context(tracker),
            "maskedEmail": mask_email(contact["email"]),
            "expiresInMinutes": ttl_minutes,
            "resendAvailableInSeconds": window,
        }

    # ── Redeem ─────────────────────────────────────────────

    async def confirm_code(self, identifier: str, code: str, now: datetime | None = None) -> ResumeResult:
        """
        Redeem a resume code and mint a fresh session.

        Raises:
            ValidationError, NotFound, Gone, CodeExpired, TooManyAttempts, InvalidCode
        """
        now = now or utcnow()
        code = str(code or "").strip()
        tracker, identifier_hash = await self._resumable_tracker(identifier, now)
        if not _CODE_RE.match(code):
            raise ValidationError("Invalid code format")

        contact = await load_driver_contact(self.db, tracker)
        if not contact["email"]:
            raise NotFound("No email on file")
        email_hash = hash_email(contact["email"], self.settings.HASH_SECRET)

        key = make_code_key(tracker.id)
        data = await self.redis.hgetall(key)
        if (
            not data
            or data.get("identifier_hash") != identifier_hash
            or data.get("email_hash") != email_hash
        ):
            raise NotFound("No active verification code. Please request a new one.")

        if datetime.fromisoformat(data["expires_at"]) <= now:
            await self.redis.delete(key)
            raise CodeExpired("Verification code expired. Please request a new one.")

        attempts = int(data.get("attempts", 0))
        max_attempts = int(data.get("max_attempts", self.settings.VERIFICATION_CODE_MAX_ATTEMPTS))
        if attempts >= max_attempts:
            raise TooManyAttempts("Too many attempts. Request a new code.")

        if not bcrypt.checkpw(code.encode(), data["code_hash"].encode()):
            attempts = await self.redis.hincrby(key, "attempts", 1)
            remaining = max(0, max_attempts - int(attempts))
            logger.info("Resume code mismatch: tracker_id=%s, remaining=%s", tracker.id, remaining)
            raise InvalidCode(
                f"Incorrect code. {remaining} attempts remaining.",
                meta={"remainingAttempts": remaining},
            )

        await self.redis.delete(key)

        if tracker.completed:
            logger.info("Resume verified for completed onboarding: tracker_id=%s", tracker.id)
            return ResumeResult(
                tracker=tracker,
                is_completed=True,
                cookie=clear_cookie_instruction(self.settings),
            )

        await self.sessions.revoke_all_for_tracker(tracker.id)
        session = await self.sessions.create_session(tracker.id, now=now)
        tracker.resume_expires_at = next_resume_expiry(self.settings, now)
        await self.db.flush()
        logger.info("Resume verified: tracker_id=%s", tracker.id)
        return ResumeResult(
            tracker=tracker,
            is_completed=False,
            cookie=self.sessions.cookie_for(session),
        )
