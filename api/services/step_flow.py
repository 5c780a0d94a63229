"""
Step-Flow Graph — the ordered onboarding steps for one applicant.

Rules:
  - The flow is a pure function of the applicant profile
  - Flatbed training is appended after the drug test only when required;
    otherwise it is absent from the flow, not skipped
  - All gating is index comparison on build_flow() output
  - advance_progress() is monotonic: currentStep never moves backward
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from services.companies import can_have_flatbed_training


class StepPath(str, Enum):
    PRE_QUALIFICATIONS = "prequalifications"
    APPLICATION_PAGE_1 = "application-form/page-1"
    APPLICATION_PAGE_2 = "application-form/page-2"
    APPLICATION_PAGE_3 = "application-form/page-3"
    APPLICATION_PAGE_4 = "application-form/page-4"
    APPLICATION_PAGE_5 = "application-form/page-5"
    POLICIES_CONSENTS = "policies-consents"
    DRIVE_TEST = "drive-test"
    CARRIERS_EDGE_TRAINING = "carriers-edge-training"
    DRUG_TEST = "drug-test"
    FLATBED_TRAINING = "flatbed-training"


_BASE_FLOW: tuple[StepPath, ...] = (
    StepPath.PRE_QUALIFICATIONS,
    StepPath.APPLICATION_PAGE_1,
    StepPath.APPLICATION_PAGE_2,
    StepPath.APPLICATION_PAGE_3,
    StepPath.APPLICATION_PAGE_4,
    StepPath.APPLICATION_PAGE_5,
    StepPath.POLICIES_CONSENTS,
    StepPath.DRIVE_TEST,
    StepPath.CARRIERS_EDGE_TRAINING,
    StepPath.DRUG_TEST,
)


class FlowProfile(Protocol):
    needs_flatbed_training: bool


class TrackerLike(FlowProfile, Protocol):
    current_step: str
    completed_steps: list
    completed: bool


@dataclass(frozen=True)
class Profile:
    needs_flatbed_training: bool = False


@dataclass(frozen=True)
class OnboardingStatus:
    current_step: StepPath
    completed_steps: tuple[StepPath, ...] = ()
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentStep": self.current_step.value,
            "completedSteps": [s.value for s in self.completed_steps],
            "completed": self.completed,
        }


def initial_status() -> OnboardingStatus:
    return OnboardingStatus(current_step=StepPath.PRE_QUALIFICATIONS)


def build_flow(profile: FlowProfile) -> list[StepPath]:
    flow = list(_BASE_FLOW)
    if profile.needs_flatbed_training:
        flow.append(StepPath.FLATBED_TRAINING)
    return flow


def _as_step(value: Any) -> StepPath | None:
    try:
        return StepPath(value)
    except ValueError:
        return None


def step_index(flow: list[StepPath], step: Any) -> int:
    """Index of step within flow, or -1 when it is not part of this flow."""
    token = _as_step(step)
    if token is None or token not in flow:
        return -1
    return flow.index(token)


def status_of(tracker: TrackerLike) -> OnboardingStatus:
    current = _as_step(tracker.current_step) or StepPath.PRE_QUALIFICATIONS
    steps = tuple(s for s in (_as_step(v) for v in tracker.completed_steps or []) if s is not None)
    return OnboardingStatus(current_step=current, completed_steps=steps, completed=bool(tracker.completed))


def has_reached_step(tracker: TrackerLike, step: StepPath) -> bool:
    flow = build_flow(tracker)
    target = step_index(flow, step)
    if target < 0:
        return False
    return step_index(flow, tracker.current_step) >= target


def has_completed_step(tracker: TrackerLike, step: StepPath) -> bool:
    if step.value in (tracker.completed_steps or []):
        return True
    flow = build_flow(tracker)
    target = step_index(flow, step)
    if target < 0:
        return False
    return step_index(flow, tracker.current_step) > target


def advance_progress(tracker: TrackerLike, step: StepPath) -> OnboardingStatus:
    """
    Record `step` as submitted and return the new status.

    currentStep moves to the step after `step` (clamped at the terminal step)
    unless the tracker is already further along. completedSteps stays
    contiguous from the first step through `step`. Submitting the terminal
    step marks the onboarding completed. A step outside this tracker's flow
    leaves the status unchanged.
    """
    previous = status_of(tracker)
    flow = build_flow(tracker)
    target = step_index(flow, step)
    if target < 0:
        return previous

    last = len(flow) - 1
    current = step_index(flow, previous.current_step)
    new_index = max(current, min(target + 1, last))

    done = {s for s in previous.completed_steps} | set(flow[: target + 1])
    return OnboardingStatus(
        current_step=flow[new_index],
        completed_steps=tuple(s for s in flow if s in done),
        completed=previous.completed or target == last,
    )


def fit_status_to_flow(tracker: TrackerLike) -> OnboardingStatus:
    """
    Re-express the status inside the tracker's current flow after its profile changed.

    Steps no longer in the flow are dropped from completedSteps; a currentStep
    that left the flow is clamped to the new terminal step. The tracker is
    completed once every step of the new flow is completed. Completion is
    never withdrawn.
    """
    previous = status_of(tracker)
    flow = build_flow(tracker)
    done = tuple(s for s in flow if s in previous.completed_steps)
    current = previous.current_step if previous.current_step in flow else flow[-1]
    return OnboardingStatus(
        current_step=current,
        completed_steps=done,
        completed=previous.completed or len(done) == len(flow),
    )


def apply_status(tracker: Any, status: OnboardingStatus) -> None:
    """Write a status back onto an ORM tracker (new list object so JSON change is tracked)."""
    tracker.current_step = status.current_step.value
    tracker.completed_steps = [s.value for s in status.completed_steps]
    tracker.completed = status.completed


def next_step(flow: list[StepPath], step: Any) -> StepPath | None:
    i = step_index(flow, step)
    if i < 0 or i + 1 >= len(flow):
        return None
    return flow[i + 1]


def prev_step(flow: list[StepPath], step: Any) -> StepPath | None:
    i = step_index(flow, step)
    if i <= 0:
        return None
    return flow[i - 1]


def is_final_step(flow: list[StepPath], step: Any) -> bool:
    return step_index(flow, step) == len(flow) - 1


def needs_flatbed_training(
    company_id: str | None,
    application_type: str | None,
    has_flatbed_experience: bool = False,
) -> bool:
    """Training is required when it is possible for the company/application and the driver lacks flatbed experience."""
    if has_flatbed_experience:
        return False
    return can_have_flatbed_training(company_id, application_type)


def build_tracker_context(tracker: Any) -> dict[str, Any]:
    """Public tracker summary the client uses to route between step pages."""
    flow = build_flow(tracker)
    status = status_of(tracker)
    prev_s = prev_step(flow, status.current_step)
    next_s = next_step(flow, status.current_step)
    return {
        "id": str(tracker.id),
        "companyId": tracker.company_id,
        "applicationType": tracker.application_type,
        "needsFlatbedTraining": bool(tracker.needs_flatbed_training),
        "status": status.to_dict(),
        "prevStep": prev_s.value if prev_s else None,
        "nextStep": next_s.value if next_s else None,
    }
