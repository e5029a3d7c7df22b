"""Onboarding path engine schema and seed milestones

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

import uuid

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSON, UUID

from alembic import op

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

MILESTONES = [
    ("First Steps", "Complete your first onboarding step", "progress", {"steps_completed": 1}, 10),
    ("Halfway There", "Complete half of your onboarding path", "progress", {"progress_percentage": 50}, 25),
    ("Onboarding Complete", "Finish every step of your onboarding path", "progress", {"progress_percentage": 100}, 50),
    ("Fast Learner", "Finish onboarding in under an hour", "time_based", {"max_time_minutes": 60}, 30),
]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "onboarding_paths",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("target_role", sa.String(100), nullable=False),
        sa.Column("subscription_tier", sa.String(50), nullable=True),
        sa.Column("estimated_duration", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("prerequisites", ARRAY(sa.String), server_default="{}", nullable=False),
        sa.Column("learning_objectives", ARRAY(sa.String), server_default="{}", nullable=False),
        sa.Column("success_criteria", JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_onboarding_paths_target_role", "onboarding_paths", ["target_role"])
    op.create_index("ix_onboarding_paths_subscription_tier", "onboarding_paths", ["subscription_tier"])
    op.create_index("ix_onboarding_paths_is_active", "onboarding_paths", ["is_active"])

    op.create_table(
        "onboarding_steps",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column(
            "path_id", UUID(as_uuid=True), sa.ForeignKey("onboarding_paths.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("step_type", sa.String(50), nullable=False),
        sa.Column("step_order", sa.Integer, nullable=False),
        sa.Column("estimated_time", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_required", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("dependencies", ARRAY(sa.String), server_default="{}", nullable=False),
        sa.Column("content", JSON, nullable=True),
        sa.Column("validation_rules", JSON, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("path_id", "step_order", name="uq_onboarding_steps_path_order"),
    )
    op.create_index("ix_onboarding_steps_path_id", "onboarding_steps", ["path_id"])

    op.create_table(
        "onboarding_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=True),
        sa.Column("path_id", UUID(as_uuid=True), sa.ForeignKey("onboarding_paths.id"), nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("current_step_id", UUID(as_uuid=True), nullable=True),
        sa.Column("current_step_index", sa.Integer, server_default="0", nullable=False),
        sa.Column("progress_percentage", sa.Float, server_default="0", nullable=False),
        sa.Column("time_spent", sa.Integer, server_default="0", nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_metadata", JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_onboarding_sessions_user_id", "onboarding_sessions", ["user_id"])
    op.create_index("ix_onboarding_sessions_organization_id", "onboarding_sessions", ["organization_id"])
    op.create_index("ix_onboarding_sessions_path_id", "onboarding_sessions", ["path_id"])
    op.create_index("ix_onboarding_sessions_status", "onboarding_sessions", ["status"])
    # At most one open session per user and organization
    op.create_index(
        "uq_onboarding_sessions_open",
        "onboarding_sessions",
        ["user_id", sa.text("coalesce(organization_id, '00000000-0000-0000-0000-000000000000'::uuid)")],
        unique=True,
        postgresql_where=sa.text("status IN ('active', 'paused')"),
    )

    op.create_table(
        "onboarding_step_progress",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("onboarding_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "step_id", UUID(as_uuid=True), sa.ForeignKey("onboarding_steps.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="not_started", nullable=False),
        sa.Column("time_spent", sa.Integer, server_default="0", nullable=False),
        sa.Column("attempts", sa.Integer, server_default="0", nullable=False),
        sa.Column("completion_rate", sa.Float, server_default="0", nullable=False),
        sa.Column("error_rate", sa.Float, server_default="0", nullable=False),
        sa.Column("user_actions", JSON, nullable=True),
        sa.Column("errors", JSON, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("session_id", "step_id", name="uq_step_progress_session_step"),
        sa.CheckConstraint("completion_rate >= 0 AND completion_rate <= 1", name="ck_step_progress_completion_rate"),
        sa.CheckConstraint("error_rate >= 0 AND error_rate <= 1", name="ck_step_progress_error_rate"),
    )
    op.create_index("ix_onboarding_step_progress_session_id", "onboarding_step_progress", ["session_id"])

    op.create_table(
        "onboarding_path_adjustments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("onboarding_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("adjustment_type", sa.String(30), nullable=False),
        sa.Column("adjustment_reason", sa.Text, nullable=False),
        sa.Column("affected_step_ids", ARRAY(sa.String), server_default="{}", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_onboarding_path_adjustments_session_id", "onboarding_path_adjustments", ["session_id"])

    milestones = op.create_table(
        "onboarding_milestones",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("milestone_type", sa.String(30), nullable=False),
        sa.Column("criteria", JSON, nullable=False),
        sa.Column("points", sa.Integer, server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "onboarding_user_achievements",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "session_id",
            UUID(as_uuid=True),
            sa.ForeignKey("onboarding_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "milestone_id",
            UUID(as_uuid=True),
            sa.ForeignKey("onboarding_milestones.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("achievement_data", JSON, nullable=True),
        sa.UniqueConstraint(
            "user_id", "session_id", "milestone_id", name="uq_user_achievements_user_session_milestone"
        ),
    )
    op.create_index("ix_onboarding_user_achievements_user_id", "onboarding_user_achievements", ["user_id"])
    op.create_index("ix_onboarding_user_achievements_session_id", "onboarding_user_achievements", ["session_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("session_id", UUID(as_uuid=True), nullable=True),
        sa.Column("path_id", UUID(as_uuid=True), nullable=True),
        sa.Column("step_id", UUID(as_uuid=True), nullable=True),
        sa.Column("correlation_id", sa.String(255), nullable=True),
        sa.Column("payload", JSON, nullable=True),
    )
    op.create_index("ix_audit_events_organization_id", "audit_events", ["organization_id"])
    op.create_index("ix_audit_events_category", "audit_events", ["category"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_session_id", "audit_events", ["session_id"])
    op.create_index("ix_audit_events_correlation_id", "audit_events", ["correlation_id"])

    op.bulk_insert(
        milestones,
        [
            {
                "id": uuid.uuid4(),
                "name": name,
                "description": description,
                "milestone_type": milestone_type,
                "criteria": criteria,
                "points": points,
                "is_active": True,
            }
            for name, description, milestone_type, criteria, points in MILESTONES
        ],
    )


def downgrade() -> None:
    tables = [
        "audit_events",
        "onboarding_user_achievements",
        "onboarding_milestones",
        "onboarding_path_adjustments",
        "onboarding_step_progress",
        "onboarding_sessions",
        "onboarding_steps",
        "onboarding_paths",
    ]
    for table in tables:
        op.drop_table(table)
