from app.models.base import Base
from app.models.audit import AuditEvent
from app.models.onboarding import (
    OnboardingMilestone,
    OnboardingPath,
    OnboardingSession,
    OnboardingStep,
    PathAdjustmentRecord,
    StepProgress,
    UserAchievement,
)

__all__ = [
    "Base",
    "AuditEvent",
    "OnboardingPath", "OnboardingStep", "OnboardingSession", "StepProgress",
    "PathAdjustmentRecord", "OnboardingMilestone", "UserAchievement",
]
