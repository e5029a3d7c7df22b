from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, computed_field

from app.services.onboarding.content import StepContent, content_preview


class StartOnboardingRequest(BaseModel):
    pace_preference: Literal["fast", "medium", "slow"] = "medium"
    learning_style: str = "mixed"
    # Override the role and tier carried by the token, e.g. for admins previewing paths
    user_role: str | None = None
    subscription_tier: str | None = None


class SessionResponse(BaseModel):
    id: str
    user_id: str
    organization_id: str | None = None
    path_id: str
    status: str
    current_step_id: str | None = None
    current_step_index: int
    progress_percentage: float
    time_spent: int
    started_at: datetime | None = None
    paused_at: datetime | None = None
    completed_at: datetime | None = None
    session_metadata: dict = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class StepResponse(BaseModel):
    id: str
    path_id: str
    title: str
    description: str | None = None
    step_type: str
    order: int
    estimated_time: int
    is_required: bool
    dependencies: list[str] = Field(default_factory=list)
    content: StepContent | None = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def preview(self) -> str | None:
        return content_preview(self.content) if self.content else None


class NextStepResponse(BaseModel):
    step: StepResponse | None = None
    finished: bool


class PathSummaryResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    target_role: str
    subscription_tier: str | None = None
    estimated_duration: int
    learning_objectives: list[str] = Field(default_factory=list)
    step_count: int = 0


class StepProgressRequest(BaseModel):
    status: Literal["in_progress", "completed", "skipped", "failed"]
    time_spent: int = Field(0, ge=0)
    completion_rate: float | None = Field(None, ge=0, le=1)
    error_rate: float | None = Field(None, ge=0, le=1)
    user_actions: dict | None = None
    errors: dict | None = None


class StepProgressResponse(BaseModel):
    session_id: str
    step_id: str
    status: str
    time_spent: int
    attempts: int
    completion_rate: float
    error_rate: float
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class AchievementResponse(BaseModel):
    milestone_id: str
    earned_at: datetime | None = None
    achievement_data: dict = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class OverallProgressResponse(BaseModel):
    session_id: str
    current_step_index: int
    completed_steps: list[str]
    skipped_steps: list[str]
    total_steps: int
    overall_progress: float
    time_spent: int
    milestones: list[AchievementResponse] = Field(default_factory=list)
    last_updated: datetime | None = None

    model_config = {"from_attributes": True}


class CompletionReportResponse(BaseModel):
    is_valid: bool
    completion_percentage: float
    issues: list[str] = Field(default_factory=list)
    missing_steps: list[str] = Field(default_factory=list)
    dependency_violations: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class PathAdjustmentResponse(BaseModel):
    session_id: str
    adjustment_type: str
    adjustment_reason: str
    affected_step_ids: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PathIssueRequest(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    severity: Literal["low", "medium", "high"] = "medium"
    description: str = ""


class AlternativesRequest(BaseModel):
    issues: list[PathIssueRequest] = Field(default_factory=list)


class AlternativePathResponse(BaseModel):
    path_id: str
    path_name: str
    reason: str
    estimated_duration: int
    severity: str
    focus_areas: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SwitchPathRequest(BaseModel):
    path_id: str


class BlockerResponse(BaseModel):
    step_id: str
    step_title: str
    blocker_type: str
    description: str
    suggested_resolution: str
    severity: str
    frequency: int
    time_stuck: float
    patterns: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class BackupResponse(BaseModel):
    progress: dict | None = None
    achievements: list[dict] = Field(default_factory=list)
    last_backup: str | None = None

    model_config = {"from_attributes": True}


class SyncConflictResponse(BaseModel):
    type: str
    local: dict | None = None
    server: dict | None = None
    resolution: str

    model_config = {"from_attributes": True}


class SyncResponse(BaseModel):
    synchronized: bool
    conflicts: list[SyncConflictResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProgressAnalyticsResponse(BaseModel):
    total_time_spent: int
    average_time_per_step: float
    completion_rate: float
    skip_rate: float
    failure_rate: float
    engagement_score: float
    difficulty_score: float
    recommendations: list[str] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ProgressTrendsResponse(BaseModel):
    progress_velocity: float
    engagement_trend: str
    difficulty_trend: str
    time_efficiency: float

    model_config = {"from_attributes": True}


class ProgressReportResponse(BaseModel):
    session_id: str
    overall_progress: OverallProgressResponse
    blockers: list[BlockerResponse] = Field(default_factory=list)
    achievements: list[AchievementResponse] = Field(default_factory=list)
    analytics: ProgressAnalyticsResponse
    trends: ProgressTrendsResponse

    model_config = {"from_attributes": True}


class BadgeResponse(BaseModel):
    badge_id: str
    name: str
    description: str
    criteria: dict = Field(default_factory=dict)
    is_earned: bool
    progress: float

    model_config = {"from_attributes": True}


class CertificateResponse(BaseModel):
    certificate_id: str
    certificate_url: str
    issued_at: datetime
    path_name: str
    completion_time: int
    achievements: list[AchievementResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
