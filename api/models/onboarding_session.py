"""OnboardingSession ORM model — opaque server-side session bound to one tracker."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base, UTCDateTime, utcnow


class OnboardingSession(Base):
    __tablename__ = "onboarding_sessions"

    # The cookie value; never derived from tracker data
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tracker_id: Mapped[uuid.UUID] = mapped_column(index=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    last_used_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
