from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import ARRAY, JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

SESSION_STATUSES = ("not_started", "active", "paused", "completed", "abandoned")
PROGRESS_STATUSES = ("not_started", "in_progress", "completed", "skipped", "failed")


class OnboardingPath(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "onboarding_paths"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_role: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    subscription_tier: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    estimated_duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    prerequisites: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    learning_objectives: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    success_criteria: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    steps: Mapped[list["OnboardingStep"]] = relationship(
        "OnboardingStep", back_populates="path", order_by="OnboardingStep.step_order"
    )


class OnboardingStep(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "onboarding_steps"
    __table_args__ = (UniqueConstraint("path_id", "step_order", name="uq_onboarding_steps_path_order"),)

    path_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_paths.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    step_type: Mapped[str] = mapped_column(String(50), nullable=False)
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    dependencies: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    content: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    validation_rules: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    path: Mapped["OnboardingPath"] = relationship("OnboardingPath", back_populates="steps")


class OnboardingSession(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "onboarding_sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    path_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_paths.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)
    current_step_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    current_step_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_percentage: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    session_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)


class StepProgress(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "onboarding_step_progress"
    __table_args__ = (UniqueConstraint("session_id", "step_id", name="uq_step_progress_session_step"),)

    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_steps.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="not_started", nullable=False)
    time_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completion_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    error_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    user_actions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    errors: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PathAdjustmentRecord(Base):
    """Append-only log of advisory path adjustments."""

    __tablename__ = "onboarding_path_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    adjustment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    adjustment_reason: Mapped[str] = mapped_column(Text, nullable=False)
    affected_step_ids: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class OnboardingMilestone(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "onboarding_milestones"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    milestone_type: Mapped[str] = mapped_column(String(30), nullable=False)
    criteria: Mapped[dict] = mapped_column(JSON, nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserAchievement(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "onboarding_user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "session_id", "milestone_id", name="uq_user_achievements_user_session_milestone"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    milestone_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("onboarding_milestones.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    achievement_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
