"""Pydantic schemas for onboarding, resume and admin endpoints."""

from __future__ import annotations
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class ApplicationType(str, Enum):
    FLAT_BED = "FLAT_BED"
    DRY_VAN = "DRY_VAN"


class TerminationType(str, Enum):
    RESIGNED = "RESIGNED"
    TERMINATED = "TERMINATED"
    REJECTED = "REJECTED"


# ── Onboarding ─────────────────────────────────────────────

class StartOnboardingRequest(BaseModel):
    """Pre-qualification answers plus application page 1, submitted together."""
    identifier: str = Field(..., validation_alias=AliasChoices("identifier", "sin"))
    company_id: str = Field(..., min_length=1, max_length=50, validation_alias=AliasChoices("company_id", "companyId"))
    application_type: ApplicationType | None = Field(
        None, validation_alias=AliasChoices("application_type", "applicationType"),
    )
    has_flatbed_experience: bool = Field(
        False, validation_alias=AliasChoices("has_flatbed_experience", "hasFlatbedExperience"),
    )
    prequalifications: dict[str, Any] = Field(default_factory=dict)
    application_page1: dict[str, Any] = Field(
        ..., validation_alias=AliasChoices("application_page1", "applicationFormPage1"),
    )


# ── Resume ─────────────────────────────────────────────────

class ResumeSendCodeRequest(BaseModel):
    identifier: str = Field(..., validation_alias=AliasChoices("identifier", "sin"))


class ResumeConfirmRequest(BaseModel):
    identifier: str = Field(..., validation_alias=AliasChoices("identifier", "sin"))
    code: str


# ── Admin ──────────────────────────────────────────────────

class TerminationAction(BaseModel):
    terminated: bool
    termination_type: TerminationType | None = None


class FlatbedTrainingUpdate(BaseModel):
    needs_flatbed_training: bool


class TrackerAdminResponse(BaseModel):
    id: str
    company_id: str
    application_type: str | None
    needs_flatbed_training: bool
    current_step: str
    completed: bool
    terminated: bool
    termination_type: str | None
    status: dict[str, Any]
