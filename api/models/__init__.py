from models.onboarding_tracker import OnboardingTracker
from models.onboarding_form import OnboardingForm
from models.onboarding_session import OnboardingSession

__all__ = [
    "OnboardingTracker", "OnboardingForm", "OnboardingSession",
]
