"""
Session Manager — opaque server-side onboarding sessions with sliding expiry.

The cookie carries only the session id. Every validated use pushes
expires_at forward by the configured TTL; no cross-request locking,
last writer wins.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from config import Settings
from db.database import utcnow
from models.onboarding_session import OnboardingSession
from services.errors import SessionRequired

logger = logging.getLogger(__name__)


@dataclass
class CookieInstruction:
    """Set (max_age > 0) or clear (value None) the onboarding session cookie."""

    name: str
    value: str | None
    max_age: int = 0
    secure: bool = True

    def apply(self, response: Response) -> None:
        if self.value is None:
            response.delete_cookie(
                self.name, path="/", secure=self.secure, httponly=True, samesite="lax",
            )
            return
        response.set_cookie(
            self.name,
            self.value,
            max_age=self.max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )


@dataclass
class ValidatedSession:
    session: OnboardingSession
    refresh_cookie: CookieInstruction


def clear_cookie_instruction(settings: Settings) -> CookieInstruction:
    return CookieInstruction(
        name=settings.ONBOARDING_SESSION_COOKIE_NAME,
        value=None,
        secure=settings.COOKIE_SECURE,
    )


def _short(session_id: str | None) -> str:
    return (session_id or "")[:8]


class SessionManager:
    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.ONBOARDING_SESSION_TTL_SECONDS)

    def cookie_for(self, session: OnboardingSession) -> CookieInstruction:
        return CookieInstruction(
            name=self.settings.ONBOARDING_SESSION_COOKIE_NAME,
            value=session.id,
            max_age=self.settings.ONBOARDING_SESSION_TTL_SECONDS,
            secure=self.settings.COOKIE_SECURE,
        )

    async def create_session(self, tracker_id: uuid.UUID, now: datetime | None = None) -> OnboardingSession:
        now = now or utcnow()
        session = OnboardingSession(
            id=secrets.token_urlsafe(32),
            tracker_id=tracker_id,
            expires_at=now + self.ttl,
            last_used_at=now,
            revoked=False,
            created_at=now,
        )
        self.db.add(session)
        await self.db.flush()
        logger.info("Session created: tracker_id=%s, session=%s…", tracker_id, _short(session.id))
        return session

    async def get(self, session_id: str) -> OnboardingSession | None:
        result = await self.db.execute(
            select(OnboardingSession).where(OnboardingSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def validate(
        self,
        session_id: str | None,
        expected_tracker_id: uuid.UUID,
        now: datetime | None = None,
    ) -> ValidatedSession:
        """
        Check the session belongs to the tracker and is live, then slide it.

        Raises SessionRequired with reason NOT_FOUND, REVOKED, EXPIRED or
        TRACKER_MISMATCH; each one tells the caller to clear the cookie.
        """
        now = now or utcnow()
        session = await self.get(session_id) if session_id else None

        if session is None:
            raise SessionRequired(reason=SessionRequired.NOT_FOUND)
        if session.revoked:
            raise SessionRequired(reason=SessionRequired.REVOKED)
        if session.expires_at <= now:
            raise SessionRequired(reason=SessionRequired.EXPIRED)
        if session.tracker_id != expected_tracker_id:
            logger.warning(
                "Session tracker mismatch: session=%s…, expected=%s",
                _short(session.id), expected_tracker_id,
            )
            raise SessionRequired(reason=SessionRequired.TRACKER_MISMATCH)

        session.expires_at = now + self.ttl
        session.last_used_at = now
        await self.db.flush()
        return ValidatedSession(session=session, refresh_cookie=self.cookie_for(session))

    async def revoke(self, session_id: str) -> None:
        await self.db.execute(
            update(OnboardingSession)
            .where(OnboardingSession.id == session_id)
            .values(revoked=True)
        )
        await self.db.flush()
        logger.info("Session revoked: session=%s…", _short(session_id))

    async def revoke_all_for_tracker(self, tracker_id: uuid.UUID) -> None:
        await self.db.execute(
            update(OnboardingSession)
            .where(OnboardingSession.tracker_id == tracker_id, OnboardingSession.revoked.is_(False))
            .values(revoked=True)
        )
        await self.db.flush()
        logger.info("All sessions revoked: tracker_id=%s", tracker_id)

    async def delete_for_tracker(self, tracker_id: uuid.UUID) -> int:
        result = await self.db.execute(
            delete(OnboardingSession)
            .where(OnboardingSession.tracker_id == tracker_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_stale(self, now: datetime | None = None) -> int:
        """Delete every expired or revoked session, whatever its tracker's state."""
        now = now or utcnow()
        result = await self.db.execute(
            delete(OnboardingSession)
            .where(or_(OnboardingSession.expires_at <= now, OnboardingSession.revoked.is_(True)))
            .execution_options(synchronize_session=False)
        )
        purged = result.rowcount or 0
        if purged:
            logger.info("Stale sessions purged: count=%d", purged)
        return purged
