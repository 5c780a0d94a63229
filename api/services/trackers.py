"""Tracker and sub-form lookups shared by the onboarding, resume and cleanup services."""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.onboarding_form import OnboardingForm
from models.onboarding_tracker import OnboardingTracker
from services.step_flow import StepPath

# Step -> (form name on tracker.forms, page key inside the form or None)
STEP_FORMS: dict[StepPath, tuple[str, str | None]] = {
    StepPath.PRE_QUALIFICATIONS: ("pre_qualification", None),
    StepPath.APPLICATION_PAGE_1: ("driver_application", "page1"),
    StepPath.APPLICATION_PAGE_2: ("driver_application", "page2"),
    StepPath.APPLICATION_PAGE_3: ("driver_application", "page3"),
    StepPath.APPLICATION_PAGE_4: ("driver_application", "page4"),
    StepPath.APPLICATION_PAGE_5: ("driver_application", "page5"),
    StepPath.POLICIES_CONSENTS: ("policies_consents", None),
    StepPath.DRIVE_TEST: ("drive_test", None),
    StepPath.CARRIERS_EDGE_TRAINING: ("carriers_edge_training", None),
    StepPath.DRUG_TEST: ("drug_test", None),
    StepPath.FLATBED_TRAINING: ("flatbed_training", None),
}

BLOB_KEY_FIELD = "s3Key"


async def get_tracker(
    db: AsyncSession, tracker_id: uuid.UUID, for_update: bool = False,
) -> OnboardingTracker | None:
    query = select(OnboardingTracker).where(OnboardingTracker.id == tracker_id)
    if for_update:
        # Serializes concurrent step submissions on the same tracker
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_tracker_by_identifier_hash(db: AsyncSession, identifier_hash: str) -> OnboardingTracker | None:
    result = await db.execute(
        select(OnboardingTracker).where(OnboardingTracker.identifier_hash == identifier_hash)
    )
    return result.scalar_one_or_none()


def form_ids(forms: dict | None) -> list[uuid.UUID]:
    """Sub-document ids referenced by a tracker's forms map."""
    ids = []
    for value in (forms or {}).values():
        if value:
            ids.append(uuid.UUID(str(value)))
    return ids


async def get_form(db: AsyncSession, tracker: OnboardingTracker, name: str) -> OnboardingForm | None:
    form_id = (tracker.forms or {}).get(name)
    if not form_id:
        return None
    result = await db.execute(select(OnboardingForm).where(OnboardingForm.id == uuid.UUID(str(form_id))))
    return result.scalar_one_or_none()


async def save_step_form(
    db: AsyncSession,
    tracker: OnboardingTracker,
    step: StepPath,
    payload: dict[str, Any],
) -> OnboardingForm:
    """Write a step's payload into its sub-document, creating it and its reference on first write."""
    name, page = STEP_FORMS[step]
    form = await get_form(db, tracker, name)
    if form is None:
        form = OnboardingForm(id=uuid.uuid4(), kind=name, data={})
        db.add(form)
        tracker.forms = {**(tracker.forms or {}), name: str(form.id)}

    if page:
        form.data = {**(form.data or {}), page: payload}
    else:
        form.data = dict(payload)
    await db.flush()
    return form


async def load_driver_contact(db: AsyncSession, tracker: OnboardingTracker) -> dict[str, str]:
    """Email and names on file, taken from application page 1."""
    form = await get_form(db, tracker, "driver_application")
    page1 = (form.data or {}).get("page1", {}) if form else {}
    return {
        "email": str(page1.get("email") or "").strip(),
        "first_name": str(page1.get("firstName") or ""),
        "last_name": str(page1.get("lastName") or ""),
    }


def collect_blob_keys(data: Any) -> list[str]:
    """Every non-empty s3Key found anywhere inside a form document."""
    keys: list[str] = []
    if isinstance(data, dict):
        for k, v in data.items():
            if k == BLOB_KEY_FIELD and isinstance(v, str) and v.strip():
                keys.append(v.strip())
            else:
                keys.extend(collect_blob_keys(v))
    elif isinstance(data, list):
        for item in data:
            keys.extend(collect_blob_keys(item))
    return keys
