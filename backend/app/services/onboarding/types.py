"""Domain types shared by the onboarding engine components.

These are plain dataclasses so the resolver, scorer and behavior analysis can
run without a database; the repository maps ORM rows onto them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from app.services.onboarding.content import StepContent

SessionStatus = Literal["not_started", "active", "paused", "completed", "abandoned"]
ProgressStatus = Literal["not_started", "in_progress", "completed", "skipped", "failed"]
AdjustmentType = Literal["slow_down", "speed_up", "switch_path", "insert_remedial", "none"]
Pace = Literal["fast", "medium", "slow"]
Severity = Literal["low", "medium", "high"]
EngagementLevel = Literal["low", "medium", "high"]
Trend = Literal["increasing", "stable", "decreasing"]

WILDCARD_VALUES = frozenset({"any", "*"})
SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}


@dataclass
class OnboardingStep:
    id: str
    path_id: str
    title: str
    step_type: str
    order: int
    estimated_time: int = 0  # minutes
    is_required: bool = True
    dependencies: list[str] = field(default_factory=list)
    description: str | None = None
    content: StepContent | None = None
    validation_rules: dict = field(default_factory=dict)


@dataclass
class OnboardingPath:
    id: str
    name: str
    target_role: str
    estimated_duration: int  # minutes
    subscription_tier: str | None = None
    description: str | None = None
    prerequisites: list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)
    success_criteria: dict = field(default_factory=dict)
    is_active: bool = True
    steps: list[OnboardingStep] = field(default_factory=list)
    updated_at: datetime | None = None

    def ordered_steps(self) -> list[OnboardingStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def step_by_id(self, step_id: str) -> OnboardingStep | None:
        return next((s for s in self.steps if s.id == step_id), None)


@dataclass
class OnboardingContext:
    user_id: str
    organization_id: str | None = None
    user_role: str | None = None
    subscription_tier: str | None = None
    pace_preference: Pace = "medium"
    learning_style: str = "mixed"
    completed_paths: list[str] = field(default_factory=list)
    struggling_areas: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)


@dataclass
class OnboardingSession:
    id: str
    user_id: str
    path_id: str
    organization_id: str | None = None
    status: SessionStatus = "active"
    current_step_id: str | None = None
    current_step_index: int = 0
    progress_percentage: float = 0.0
    time_spent: int = 0
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    session_metadata: dict = field(default_factory=dict)


@dataclass
class StepProgress:
    session_id: str
    step_id: str
    status: ProgressStatus = "not_started"
    user_id: str | None = None
    time_spent: int = 0  # seconds
    attempts: int = 0
    completion_rate: float = 0.0
    error_rate: float = 0.0
    user_actions: dict = field(default_factory=dict)
    errors: dict = field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class StepResult:
    """Payload reported by the client when a step is finished."""

    time_spent: int = 0
    user_actions: dict = field(default_factory=dict)
    errors: dict = field(default_factory=dict)
    completion_rate: float = 1.0
    error_rate: float = 0.0


@dataclass
class StepInteraction:
    step_id: str
    time_spent: int
    attempts: int
    completion_rate: float
    skip_rate: float
    error_rate: float


@dataclass
class UserBehavior:
    session_id: str
    step_interactions: list[StepInteraction] = field(default_factory=list)
    learning_style: str = "mixed"
    pace_preference: Pace = "medium"
    engagement_level: EngagementLevel = "medium"
    struggling_areas: list[str] = field(default_factory=list)
    preferred_content_types: list[str] = field(default_factory=list)


@dataclass
class PathAdjustment:
    session_id: str
    adjustment_type: AdjustmentType
    adjustment_reason: str
    affected_step_ids: list[str] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class PathIssue:
    type: str
    severity: Severity
    description: str = ""


@dataclass
class AlternativePath:
    path_id: str
    path_name: str
    reason: str
    estimated_duration: int
    severity: Severity
    focus_areas: list[str] = field(default_factory=list)


@dataclass
class CompletionReport:
    is_valid: bool
    completion_percentage: float
    issues: list[str] = field(default_factory=list)
    missing_steps: list[str] = field(default_factory=list)
    dependency_violations: list[str] = field(default_factory=list)


@dataclass
class Milestone:
    id: str
    name: str
    milestone_type: str
    criteria: dict = field(default_factory=dict)
    points: int = 0
    description: str | None = None


@dataclass
class Achievement:
    user_id: str
    session_id: str
    milestone_id: str
    id: str | None = None
    earned_at: datetime | None = None
    achievement_data: dict = field(default_factory=dict)


@dataclass
class OverallProgress:
    session_id: str
    current_step_index: int
    completed_steps: list[str]
    skipped_steps: list[str]
    total_steps: int
    overall_progress: float
    time_spent: int
    milestones: list[Achievement] = field(default_factory=list)
    last_updated: datetime | None = None


@dataclass
class Blocker:
    step_id: str
    step_title: str
    blocker_type: str
    description: str
    suggested_resolution: str
    severity: Severity
    frequency: int = 1
    time_stuck: float = 0.0  # minutes
    patterns: list[str] = field(default_factory=list)


@dataclass
class RestoredProgress:
    progress: dict | None = None
    achievements: list[dict] = field(default_factory=list)
    last_backup: str | None = None


@dataclass
class SyncConflict:
    type: str
    local: dict | None
    server: dict | None
    resolution: Literal["server_wins", "local_wins"]


@dataclass
class SyncResult:
    synchronized: bool
    conflicts: list[SyncConflict] = field(default_factory=list)


@dataclass
class LearningProfile:
    """What a user's completed sessions say about them."""

    completed_paths: list[str] = field(default_factory=list)
    struggling_areas: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)


@dataclass
class ProgressAnalytics:
    total_time_spent: int  # seconds
    average_time_per_step: float  # minutes
    completion_rate: float  # percent
    skip_rate: float
    failure_rate: float
    engagement_score: float
    difficulty_score: float
    recommendations: list[str] = field(default_factory=list)


@dataclass
class ProgressTrends:
    progress_velocity: float  # minutes per completed step
    engagement_trend: Trend
    difficulty_trend: Trend
    time_efficiency: float


@dataclass
class ProgressReport:
    session_id: str
    overall_progress: OverallProgress
    blockers: list[Blocker]
    achievements: list[Achievement]
    analytics: ProgressAnalytics
    trends: ProgressTrends


@dataclass
class Badge:
    badge_id: str
    name: str
    description: str
    criteria: dict
    is_earned: bool
    progress: float


@dataclass
class CompletionCertificate:
    certificate_id: str
    certificate_url: str
    issued_at: datetime
    path_name: str
    completion_time: int  # seconds
    achievements: list[Achievement] = field(default_factory=list)
