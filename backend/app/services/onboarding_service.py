"""Session lifecycle for adaptive onboarding.

Thin layer over PathEngine and ProgressTracker used by the API routers.
"""

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.services.onboarding import resolver
from app.services.onboarding.backup import ProgressBackupStore, RedisProgressBackupStore
from app.services.onboarding.catalog import ContentCatalog
from app.services.onboarding.notifier import AnalyticsNotifier, AuditLogNotifier, NullNotifier
from app.services.onboarding.path_engine import PathEngine
from app.services.onboarding.progress_tracker import ProgressTracker
from app.services.onboarding.repository import (
    OnboardingRepository,
    SqlAlchemyOnboardingRepository,
    storage_errors,
)
from app.services.onboarding.types import (
    AlternativePath,
    Badge,
    Blocker,
    CompletionCertificate,
    CompletionReport,
    OnboardingContext,
    OnboardingPath,
    OnboardingSession,
    OnboardingStep,
    OverallProgress,
    PathAdjustment,
    PathIssue,
    ProgressReport,
    RestoredProgress,
    StepProgress,
    StepResult,
    SyncResult,
)

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OnboardingService:
    def __init__(
        self,
        repository: OnboardingRepository,
        notifier: AnalyticsNotifier | None = None,
        backup_store: ProgressBackupStore | None = None,
    ):
        self.repository = repository
        self.notifier = notifier or NullNotifier()
        self.catalog = ContentCatalog(repository)
        self.engine = PathEngine(repository, self.catalog, self.notifier)
        self.tracker = ProgressTracker(repository, self.notifier, backup_store)

    async def _emit(self, event: str, session: OnboardingSession, payload: dict | None = None) -> None:
        try:
            await self.notifier.record(
                event,
                payload or {},
                user_id=session.user_id,
                organization_id=session.organization_id,
                session_id=session.id,
                path_id=session.path_id,
            )
        except Exception as exc:
            logger.warning("onboarding.analytics_failed", analytics_event=event, error=str(exc))

    async def _update(self, session_id: str, operation: str, **fields) -> OnboardingSession:
        with storage_errors(f"Failed to {operation.replace('_', ' ')}", operation):
            session = await self.repository.update_session(session_id, **fields)
        if session is None:
            raise NotFoundError(f"Onboarding session {session_id} not found")
        return session

    async def initialize_onboarding(self, user_id: str, context: OnboardingContext) -> OnboardingSession:
        """Start onboarding for a user, or return the session already in flight."""
        with storage_errors("Failed to initialize onboarding", "initialize_onboarding"):
            existing = await self.repository.find_open_session(user_id, context.organization_id)
            if existing is not None:
                logger.info("onboarding.session_reused", session_id=existing.id, user_id=user_id)
                return existing

        path = await self.engine.generate_personalized_path(user_id, context)
        first = resolver.next_step(path.steps, [])
        session = OnboardingSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            organization_id=context.organization_id,
            path_id=path.id,
            status="active",
            current_step_id=first.id if first else None,
            current_step_index=0,
            started_at=_now(),
            session_metadata={
                "userRole": context.user_role,
                "subscriptionTier": context.subscription_tier,
                "pacePreference": context.pace_preference,
                "learningStyle": context.learning_style,
            },
        )
        with storage_errors("Failed to create onboarding session", "initialize_onboarding"):
            session = await self.repository.create_session(session)

        logger.info("onboarding.session_started", session_id=session.id, user_id=user_id, path_id=path.id)
        await self._emit("session_started", session, {"path_name": path.name})
        return session

    async def get_onboarding_session(self, session_id: str) -> OnboardingSession:
        with storage_errors("Failed to load onboarding session", "get_onboarding_session"):
            session = await self.repository.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Onboarding session {session_id} not found")
        return session

    async def get_session_path(self, session_id: str) -> OnboardingPath:
        session = await self.get_onboarding_session(session_id)
        with storage_errors("Failed to load onboarding path", "get_session_path"):
            path = await self.repository.get_path(session.path_id)
        if path is None:
            raise NotFoundError(f"Onboarding path {session.path_id} not found")
        path.steps = path.ordered_steps()
        return path

    async def update_onboarding_progress(self, session_id: str, step_id: str, update: dict) -> StepProgress:
        """Record progress on a step. ``update`` carries status plus optional metrics."""
        session = await self.get_onboarding_session(session_id)
        if session.status != "active":
            raise ValidationError(f"Cannot record progress on a {session.status} session")
        path = await self.get_session_path(session_id)
        if path.step_by_id(step_id) is None:
            raise NotFoundError(f"Step {step_id} is not part of this onboarding path")

        status = update.get("status", "in_progress")
        if status == "completed":
            return await self.tracker.record_step_completion(
                session_id,
                step_id,
                session.user_id,
                StepResult(
                    time_spent=update.get("time_spent", 0),
                    user_actions=update.get("user_actions") or {},
                    errors=update.get("errors") or {},
                    completion_rate=update.get("completion_rate", 1.0),
                    error_rate=update.get("error_rate", 0.0),
                ),
            )

        track = {
            "in_progress": self.tracker.start_step,
            "skipped": self.tracker.skip_step,
            "failed": self.tracker.fail_step,
        }.get(status)
        if track is None:
            raise ValidationError(f"Unknown step status: {status}")
        progress = await track(
            session_id,
            step_id,
            session.user_id,
            time_spent=update.get("time_spent", 0),
            completion_rate=update.get("completion_rate"),
            error_rate=update.get("error_rate"),
            user_actions=update.get("user_actions"),
            errors=update.get("errors"),
        )
        await self.tracker.refresh_session_progress(session_id)
        return progress

    async def complete_onboarding_session(self, session_id: str) -> OnboardingSession:
        session = await self.get_onboarding_session(session_id)
        if session.status == "completed":
            return session

        report = await self.engine.validate_path_completion(session_id)
        if not report.is_valid:
            raise ValidationError("Onboarding path is not complete", issues=report.issues)

        session = await self._update(
            session_id,
            "complete_onboarding_session",
            status="completed",
            completed_at=_now(),
            progress_percentage=100.0,
            current_step_id=None,
        )
        await self.tracker.clear_backup(session_id)
        logger.info("onboarding.session_completed", session_id=session_id, time_spent=session.time_spent)
        await self._emit("session_completed", session, {"time_spent": session.time_spent})
        return session

    async def pause_onboarding_session(self, session_id: str) -> OnboardingSession:
        session = await self.get_onboarding_session(session_id)
        if session.status != "active":
            raise ValidationError(f"Cannot pause a {session.status} session")
        session = await self._update(session_id, "pause_onboarding_session", status="paused", paused_at=_now())
        await self._emit("session_paused", session)
        return session

    async def resume_onboarding_session(self, session_id: str) -> OnboardingSession:
        session = await self.get_onboarding_session(session_id)
        if session.status != "paused":
            raise ValidationError(f"Cannot resume a {session.status} session")
        session = await self._update(session_id, "resume_onboarding_session", status="active", paused_at=None)
        await self._emit("session_resumed", session)
        return session

    async def adapt_onboarding_path(self, session_id: str) -> PathAdjustment:
        behavior = await self.tracker.get_user_behavior(session_id)
        return await self.engine.adapt_path(session_id, behavior)

    async def list_path_adjustments(self, session_id: str) -> list[PathAdjustment]:
        await self.get_onboarding_session(session_id)
        with storage_errors("Failed to load path adjustments", "list_path_adjustments"):
            return await self.repository.list_adjustments(session_id)

    async def suggest_alternative_paths(
self, session_id: str, issues: list[PathIssue]) -> list[AlternativePath]:
        return await self.engine.suggest_alternative_paths(session_id, issues)

    async def switch_to_alternative_path(self, session_id: str, path_id: str) -> OnboardingSession:
        """Move an open session onto another path. Progress on the old path is kept but no longer counted."""
        session = await self.get_onboarding_session(session_id)
        if session.status not in ("active", "paused"):
            raise ValidationError(f"Cannot switch path on a {session.status} session")
        if session.path_id == path_id:
            raise ValidationError("Session is already on this path")

        path = await self.catalog.get_path(path_id)
        first = resolver.next_step(path.steps, [])
        metadata = dict(session.session_metadata or {})
        metadata["previousPathIds"] = [*metadata.get("previousPathIds", []), session.path_id]

        await self._update(
            session_id,
            "switch_to_alternative_path",
            path_id=path.id,
            current_step_id=first.id if first else None,
            current_step_index=0,
            progress_percentage=0.0,
            session_metadata=metadata,
        )
        session = await self.tracker.refresh_session_progress(session_id) or session
        logger.info("onboarding.path_switched", session_id=session_id, path_id=path.id)
        await self._emit("path_switched", session, {"previous_path_id": metadata["previousPathIds"][-1]})
        return session

    async def get_next_step(self, session_id: str) -> OnboardingStep | None:
        await self.get_onboarding_session(session_id)
        return await self.engine.get_next_step(session_id)

    async def validate_completion(self, session_id: str) -> CompletionReport:
        return await self.engine.validate_path_completion(session_id)

    async def get_progress(self, session_id: str) -> OverallProgress:
        return await self.tracker.get_overall_progress(session_id)

    async def identify_blockers(self, session_id: str) -> list[Blocker]:
        return await self.tracker.identify_blockers(session_id)

    async def get_progress_report(self, session_id: str) -> ProgressReport:
        return await self.tracker.generate_progress_report(session_id)

    async def get_available_badges(self, session_id: str) -> list[Badge]:
        await self.get_onboarding_session(session_id)
        return await self.tracker.get_available_badges(session_id)

    async def generate_completion_certificate(self, session_id: str) -> CompletionCertificate:
        return await self.tracker.generate_completion_certificate(session_id)

    async def restore_progress(self, session_id: str) -> RestoredProgress:
        return await self.tracker.restore_progress_from_local_storage(session_id)

    async def synchronize_progress(self, session_id: str) -> SyncResult:
        session = await self.get_onboarding_session(session_id)
        return await self.tracker.synchronize_progress(session_id, user_id=session.user_id)

    async def search_paths(self, query: str, limit: int = 20) -> list[OnboardingPath]:
        return await self.catalog.search_paths(query, limit)


def build_onboarding_service(db: AsyncSession, backup_store: ProgressBackupStore | None = None) -> OnboardingService:
    """Wire the service against the request's database session."""
    return OnboardingService(
        SqlAlchemyOnboardingRepository(db),
        notifier=AuditLogNotifier(db),
        backup_store=backup_store or RedisProgressBackupStore(),
    )
