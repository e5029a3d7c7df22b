"""Storage port for the onboarding engine and its SQLAlchemy implementation."""

from __future__ import annotations

import abc
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import DatabaseError, OnboardingError
from app.models import onboarding as orm
from app.services.onboarding.content import parse_step_content
from app.services.onboarding.types import (
    Achievement,
    Milestone,
    OnboardingPath,
    OnboardingSession,
    OnboardingStep,
    PathAdjustment,
    StepProgress,
)

logger = structlog.get_logger()


@contextmanager
def storage_errors(message: str, operation: str) -> Iterator[None]:
    """Re-raise unexpected storage failures as DatabaseError naming the operation."""
    try:
        yield
    except OnboardingError:
        raise
    except Exception as exc:
        logger.error("onboarding.storage_error", operation=operation, error=str(exc))
        raise DatabaseError(message, operation) from exc


class OnboardingRepository(abc.ABC):
    """Persistence operations the engine, tracker and service depend on."""

    @abc.abstractmethod
    async def list_active_paths(self) -> list[OnboardingPath]: ...

    @abc.abstractmethod
    async def get_path(self, path_id: str) -> OnboardingPath | None:
        """Return the path with its steps, active or not."""

    @abc.abstractmethod
    async def get_session(self, session_id: str) -> OnboardingSession | None: ...

    @abc.abstractmethod
    async def find_open_session(self, user_id: str, organization_id: str | None) -> OnboardingSession | None:
        """Return the user's active or paused session in the organization, if any."""

    @abc.abstractmethod
    async def list_completed_path_ids(self, user_id: str) -> list[str]: ...

    @abc.abstractmethod
    async def list_completed_session_progress(self, user_id: str) -> list[StepProgress]:
        """Return the step progress rows of every session the user completed."""

    @abc.abstractmethod
    async def create_session(self, session: OnboardingSession) -> OnboardingSession: ...

    @abc.abstractmethod
    async def update_session(self, session_id: str, **fields) -> OnboardingSession | None: ...

    @abc.abstractmethod
    async def list_progress(self, session_id: str) -> list[StepProgress]: ...

    @abc.abstractmethod
    async def get_progress(self, session_id: str, step_id: str) -> StepProgress | None: ...

    @abc.abstractmethod
    async def save_progress(self, progress: StepProgress) -> StepProgress:
        """Insert or update the single row for (session_id, step_id)."""

    @abc.abstractmethod
    async def append_adjustment(self, adjustment: PathAdjustment) -> PathAdjustment: ...

    @abc.abstractmethod
    async def list_adjustments(self, session_id: str) -> list[PathAdjustment]: ...

    @abc.abstractmethod
    async def list_milestones(self) -> list[Milestone]: ...

    @abc.abstractmethod
    async def list_achievements(self, session_id: str) -> list[Achievement]: ...

    @abc.abstractmethod
    async def add_achievement(self, achievement: Achievement) -> Achievement:
        """Store the achievement unless it was already earned; return the stored row."""


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


def step_from_row(row: orm.OnboardingStep) -> OnboardingStep:
    return OnboardingStep(
        id=str(row.id),
        path_id=str(row.path_id),
        title=row.title,
        description=row.description,
        step_type=row.step_type,
        order=row.step_order,
        estimated_time=row.estimated_time or 0,
        is_required=row.is_required,
        dependencies=list(row.dependencies or []),
        content=parse_step_content(row.content),
        validation_rules=row.validation_rules or {},
    )


def path_from_row(row: orm.OnboardingPath) -> OnboardingPath:
    return OnboardingPath(
        id=str(row.id),
        name=row.name,
        description=row.description,
        target_role=row.target_role,
        subscription_tier=row.subscription_tier,
        estimated_duration=row.estimated_duration or 0,
        prerequisites=list(row.prerequisites or []),
        learning_objectives=list(row.learning_objectives or []),
        success_criteria=row.success_criteria or {},
        is_active=row.is_active,
        steps=sorted((step_from_row(s) for s in row.steps), key=lambda s: s.order),
        updated_at=row.updated_at,
    )


def session_from_row(row: orm.OnboardingSession) -> OnboardingSession:
    return OnboardingSession(
        id=str(row.id),
        user_id=str(row.user_id),
        organization_id=_str_or_none(row.organization_id),
        path_id=str(row.path_id),
        status=row.status,
        current_step_id=_str_or_none(row.current_step_id),
        current_step_index=row.current_step_index,
        progress_percentage=row.progress_percentage,
        time_spent=row.time_spent,
        started_at=row.started_at,
        paused_at=row.paused_at,
        completed_at=row.completed_at,
        updated_at=row.updated_at,
        session_metadata=dict(row.session_metadata or {}),
    )


def progress_from_row(row: orm.StepProgress) -> StepProgress:
    return StepProgress(
        session_id=str(row.session_id),
        step_id=str(row.step_id),
        user_id=_str_or_none(row.user_id),
        status=row.status,
        time_spent=row.time_spent,
        attempts=row.attempts,
        completion_rate=row.completion_rate,
        error_rate=row.error_rate,
        user_actions=row.user_actions or {},
        errors=row.errors or {},
        started_at=row.started_at,
        completed_at=row.completed_at,
        updated_at=row.updated_at,
    )


def achievement_from_row(row: orm.UserAchievement) -> Achievement:
    return Achievement(
        id=str(row.id),
        user_id=str(row.user_id),
        session_id=str(row.session_id),
        milestone_id=str(row.milestone_id),
        earned_at=row.earned_at,
        achievement_data=row.achievement_data or {},
    )


_SESSION_UUID_FIELDS = {"path_id", "current_step_id", "organization_id"}


class SqlAlchemyOnboardingRepository(OnboardingRepository):
    """Repository backed by the async SQLAlchemy session of the current request.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_paths(self) -> list[OnboardingPath]:
        result = await self.db.execute(
            select(orm.OnboardingPath)
            .options(selectinload(orm.OnboardingPath.steps))
            .where(orm.OnboardingPath.is_active.is_(True))
            .order_by(orm.OnboardingPath.name)
        )
        return [path_from_row(row) for row in result.scalars().all()]

    async def get_path(self, path_id: str) -> OnboardingPath | None:
        result = await self.db.execute(
            select(orm.OnboardingPath)
            .options(selectinload(orm.OnboardingPath.steps))
            .where(orm.OnboardingPath.id == uuid.UUID(path_id))
        )
        row = result.scalar_one_or_none()
        return path_from_row(row) if row else None

    async def _get_session_row(self, session_id: str) -> orm.OnboardingSession | None:
        result = await self.db.execute(
            select(orm.OnboardingSession).where(orm.OnboardingSession.id == uuid.UUID(session_id))
        )
        return result.scalar_one_or_none()

    async def get_session(self, session_id: str) -> OnboardingSession | None:
        row = await self._get_session_row(session_id)
        return session_from_row(row) if row else None

    async def find_open_session(self, user_id: str, organization_id: str | None) -> OnboardingSession | None:
        org_clause = (
            orm.OnboardingSession.organization_id.is_(None)
            if organization_id is None
            else orm.OnboardingSession.organization_id == uuid.UUID(organization_id)
        )
        result = await self.db.execute(
            select(orm.OnboardingSession)
            .where(
                orm.OnboardingSession.user_id == uuid.UUID(user_id),
                org_clause,
                orm.OnboardingSession.status.in_(("active", "paused")),
            )
            .order_by(orm.OnboardingSession.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return session_from_row(row) if row else None

    async def list_completed_path_ids(self, user_id: str) -> list[str]:
        result = await self.db.execute(
            select(orm.OnboardingSession.path_id).where(
                orm.OnboardingSession.user_id == uuid.UUID(user_id),
                orm.OnboardingSession.status == "completed",
            )
        )
        return sorted({str(path_id) for path_id in result.scalars().all()})

    async def list_completed_session_progress(self, user_id: str) -> list[StepProgress]:
        result = await self.db.execute(
            select(orm.StepProgress)
            .join(orm.OnboardingSession, orm.StepProgress.session_id == orm.OnboardingSession.id)
            .where(
                orm.OnboardingSession.user_id == uuid.UUID(user_id),
                orm.OnboardingSession.status == "completed",
            )
            .order_by(orm.StepProgress.created_at)
        )
        return [progress_from_row(row) for row in result.scalars().all()]

    async def create_session(self, session: OnboardingSession) -> OnboardingSession:
        row = orm.OnboardingSession(
            id=uuid.UUID(session.id),
            user_id=uuid.UUID(session.user_id),
            organization_id=uuid.UUID(session.organization_id) if session.organization_id else None,
            path_id=uuid.UUID(session.path_id),
            status=session.status,
            current_step_id=uuid.UUID(session.current_step_id) if session.current_step_id else None,
            current_step_index=session.current_step_index,
            progress_percentage=session.progress_percentage,
            time_spent=session.time_spent,
            started_at=session.started_at,
            session_metadata=session.session_metadata,
        )
        self.db.add(row)
        await self.db.flush()
        await self.db.refresh(row)
        return session_from_row(row)

    async def update_session(self, session_id: str, **fields) -> OnboardingSession | None:
        row = await self._get_session_row(session_id)
        if row is None:
            return None
        for key, value in fields.items():
            if key in _SESSION_UUID_FIELDS and value is not None:
                value = uuid.UUID(value)
            setattr(row, key, value)
        await self.db.flush()
        await self.db.refresh(row)
        return session_from_row(row)

    async def list_progress(self, session_id: str) -> list[StepProgress]:
        result = await self.db.execute(
            select(orm.StepProgress)
            .where(orm.StepProgress.session_id == uuid.UUID(session_id))
            .order_by(orm.StepProgress.created_at)
        )
        return [progress_from_row(row) for row in result.scalars().all()]

    async def get_progress(self, session_id: str, step_id: str) -> StepProgress | None:
        result = await self.db.execute(
            select(orm.StepProgress).where(
                orm.StepProgress.session_id == uuid.UUID(session_id),
                orm.StepProgress.step_id == uuid.UUID(step_id),
            )
        )
        row = result.scalar_one_or_none()
        return progress_from_row(row) if row else None

    async def save_progress(self, progress: StepProgress) -> StepProgress:
        now = datetime.now(timezone.utc)
        values = {
            "session_id": uuid.UUID(progress.session_id),
            "step_id": uuid.UUID(progress.step_id),
            "user_id": uuid.UUID(progress.user_id) if progress.user_id else None,
            "status": progress.status,
            "time_spent": progress.time_spent,
            "attempts": progress.attempts,
            "completion_rate": progress.completion_rate,
            "error_rate": progress.error_rate,
            "user_actions": progress.user_actions,
            "errors": progress.errors,
            "started_at": progress.started_at,
            "completed_at": progress.completed_at,
        }
        excluded_keys = {"session_id", "step_id"}
        set_ = {k: v for k, v in values.items() if k not in excluded_keys}
        set_["updated_at"] = now

        stmt = (
            insert(orm.StepProgress)
            .values(id=uuid.uuid4(), **values)
            .on_conflict_do_update(constraint="uq_step_progress_session_step", set_=set_)
            .returning(orm.StepProgress)
        )
        result = await self.db.execute(stmt)
        return progress_from_row(result.scalar_one())

    async def append_adjustment(self, adjustment: PathAdjustment) -> PathAdjustment:
        row = orm.PathAdjustmentRecord(
            session_id=uuid.UUID(adjustment.session_id),
            adjustment_type=adjustment.adjustment_type,
            adjustment_reason=adjustment.adjustment_reason,
            affected_step_ids=adjustment.affected_step_ids,
        )
        self.db.add(row)
        await self.db.flush()
        await self.db.refresh(row)
        adjustment.created_at = row.created_at
        return adjustment

    async def list_adjustments(self, session_id: str) -> list[PathAdjustment]:
        result = await self.db.execute(
            select(orm.PathAdjustmentRecord)
            .where(orm.PathAdjustmentRecord.session_id == uuid.UUID(session_id))
            .order_by(orm.PathAdjustmentRecord.id)
        )
        return [
            PathAdjustment(
                session_id=str(row.session_id),
                adjustment_type=row.adjustment_type,
                adjustment_reason=row.adjustment_reason,
                affected_step_ids=list(row.affected_step_ids or []),
                created_at=row.created_at,
            )
            for row in result.scalars().all()
        ]

    async def list_milestones(self) -> list[Milestone]:
        result = await self.db.execute(
            select(orm.OnboardingMilestone)
            .where(orm.OnboardingMilestone.is_active.is_(True))
            .order_by(orm.OnboardingMilestone.points.desc())
        )
        return [
            Milestone(
                id=str(row.id),
                name=row.name,
                description=row.description,
                milestone_type=row.milestone_type,
                criteria=row.criteria or {},
                points=row.points,
            )
            for row in result.scalars().all()
        ]

    async def list_achievements(self, session_id: str) -> list[Achievement]:
        result = await self.db.execute(
            select(orm.UserAchievement)
            .where(orm.UserAchievement.session_id == uuid.UUID(session_id))
            .order_by(orm.UserAchievement.earned_at)
        )
        return [achievement_from_row(row) for row in result.scalars().all()]

    async def add_achievement(self, achievement: Achievement) -> Achievement:
        stmt = (
            insert(orm.UserAchievement)
            .values(
                id=uuid.uuid4(),
                user_id=uuid.UUID(achievement.user_id),
                session_id=uuid.UUID(achievement.session_id),
                milestone_id=uuid.UUID(achievement.milestone_id),
                achievement_data=achievement.achievement_data,
            )
            .on_conflict_do_nothing(constraint="uq_user_achievements_user_session_milestone")
        )
        await self.db.execute(stmt)
        result = await self.db.execute(
            select(orm.UserAchievement).where(
                orm.UserAchievement.user_id == uuid.UUID(achievement.user_id),
                orm.UserAchievement.session_id == uuid.UUID(achievement.session_id),
                orm.UserAchievement.milestone_id == uuid.UUID(achievement.milestone_id),
            )
        )
        return achievement_from_row(result.scalar_one())


__all__ = [
    "OnboardingRepository",
    "SqlAlchemyOnboardingRepository",
    "storage_errors",
]
