"""OnboardingTracker ORM model — root record for one driver's onboarding attempt."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base, UTCDateTime, utcnow


class OnboardingTracker(Base):
    __tablename__ = "onboarding_trackers"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    identifier_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    identifier_encrypted: Mapped[str] = mapped_column(Text, nullable=False)

    company_id: Mapped[str] = mapped_column(String(50), nullable=False)
    application_type: Mapped[str | None] = mapped_column(String(20))
    needs_flatbed_training: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Progress status
    current_step: Mapped[str] = mapped_column(String(40), nullable=False)
    completed_steps: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    completion_date: Mapped[datetime | None] = mapped_column(UTCDateTime)

    resume_expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Administrative override, independent of the step flow
    terminated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    termination_type: Mapped[str | None] = mapped_column(String(20))
    termination_date: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # {form_name: form id}, weak references into onboarding_forms
    forms: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)
