"""Per-step progress tracking, milestones, reporting and progress backup."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from pydantic import TypeAdapter

from app.core.config import settings
from app.core.exceptions import NotFoundError, OnboardingError, ValidationError
from app.services.onboarding import resolver
from app.services.onboarding.backup import BackupSnapshot, NullBackupStore, ProgressBackupStore
from app.services.onboarding.behavior import derive_user_behavior
from app.services.onboarding.notifier import AnalyticsNotifier, NullNotifier
from app.services.onboarding.repository import OnboardingRepository, storage_errors
from app.services.onboarding.types import (
    Achievement,
    Badge,
    Blocker,
    CompletionCertificate,
    Milestone,
    OnboardingPath,
    OnboardingSession,
    OverallProgress,
    ProgressAnalytics,
    ProgressReport,
    ProgressStatus,
    ProgressTrends,
    RestoredProgress,
    StepProgress,
    StepResult,
    SyncConflict,
    SyncResult,
    Trend,
    UserBehavior,
)

logger = structlog.get_logger()

ATTEMPT_STATUSES = frozenset({"in_progress", "completed", "failed"})
DEFAULT_STEP_ESTIMATE_MINUTES = 10
BLOCKER_ATTEMPTS = 3
FAILURE_PATTERN_THRESHOLD = 3
SKIP_PATTERN_THRESHOLD = 4
ENGAGEMENT_RISING = 70
ENGAGEMENT_STEADY = 40
DIFFICULTY_RISING = 60
DIFFICULTY_STEADY = 30
TARGET_STEP_MINUTES = 15

_overall_adapter = TypeAdapter(OverallProgress)
_achievement_adapter = TypeAdapter(list[Achievement])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _clamp_rate(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _counts_as_attempt(previous: ProgressStatus, status: ProgressStatus) -> bool:
    """A new attempt starts unless the step is already in progress or is re-completed."""
    if status not in ATTEMPT_STATUSES:
        return False
    if previous == "in_progress":
        return False
    return not (previous == "completed" and status == "completed")


def _milestone_met(milestone: Milestone, progress: OverallProgress) -> bool:
    criteria = milestone.criteria or {}
    if milestone.milestone_type == "progress":
        if len(progress.completed_steps) < criteria.get("steps_completed", 0):
            return False
        return progress.overall_progress >= criteria.get("progress_percentage", 0)
    if milestone.milestone_type == "completion":
        required = criteria.get("required_steps") or []
        return bool(required) and all(step_id in progress.completed_steps for step_id in required)
    if milestone.milestone_type == "time_based":
        max_minutes = criteria.get("max_time_minutes")
        if max_minutes is None or progress.overall_progress < 100:
            return False
        return progress.time_spent / 60 <= max_minutes
    # "achievement" milestones are granted explicitly through award_milestone
    return False


def badge_progress(milestone: Milestone, progress: OverallProgress) -> float:
    """Percent of the way to earning a milestone that has not been earned yet."""
    criteria = milestone.criteria or {}
    if milestone.milestone_type == "progress":
        required = criteria.get("progress_percentage") or 100
        return min(progress.overall_progress / required * 100, 100.0)
    if milestone.milestone_type == "completion":
        required_steps = criteria.get("required_steps") or []
        if not required_steps:
            return 0.0
        done = sum(1 for step_id in required_steps if step_id in progress.completed_steps)
        return done / len(required_steps) * 100
    if milestone.milestone_type == "time_based":
        max_minutes = criteria.get("max_time_minutes") or 0
        if max_minutes <= 0:
            return 0.0
        remaining = max(0.0, (max_minutes - progress.time_spent / 60) / max_minutes)
        return min(remaining * 100, 100.0)
    return 0.0


def progress_recommendations(analytics: ProgressAnalytics, blocker_count: int) -> list[str]:
    recommendations = []
    if analytics.completion_rate < 50:
        recommendations.append("Consider providing additional support or switching to an easier path")
    if analytics.skip_rate > 30:
        recommendations.append("Review content relevance and add more engaging elements")
    if analytics.failure_rate > 20:
        recommendations.append("Simplify step instructions and provide better examples")
    if analytics.engagement_score < 40:
        recommendations.append("Add interactive elements and gamification to increase engagement")
    if analytics.difficulty_score > 60:
        recommendations.append("Consider breaking down complex steps into smaller, manageable tasks")
    if analytics.average_time_per_step > 20:
        recommendations.append("Optimize step content for better time efficiency")
    if blocker_count > 3:
        recommendations.append("Address identified blockers with targeted interventions")
    return recommendations or ["Progress is on track, continue with current approach"]


def _trend(score: float, rising: float, steady: float) -> Trend:
    if score > rising:
        return "increasing"
    if score > steady:
        return "stable"
    return "decreasing"


def progress_analytics(
    rows: list[StepProgress], total_time_spent: int, blocker_count: int
) -> tuple[ProgressAnalytics, ProgressTrends]:
    """Rates are percentages of the touched steps; times are reported in minutes."""
    touched = len(rows)
    completed = sum(1 for r in rows if r.status == "completed")
    skipped = sum(1 for r in rows if r.status == "skipped")
    failed = sum(1 for r in rows if r.status == "failed")

    def rate(count: int) -> float:
        return round(count / touched * 100, 2) if touched else 0.0

    average = round(total_time_spent / 60 / completed, 2) if completed else 0.0
    completion_rate, skip_rate, failure_rate = rate(completed), rate(skipped), rate(failed)
    engagement = round(max(0.0, 100 - skip_rate * 2 - failure_rate * 3), 2)
    difficulty = round(failure_rate * 2 + average / 10 + blocker_count * 10, 2)
    analytics = ProgressAnalytics(
        total_time_spent=total_time_spent,
        average_time_per_step=average,
        completion_rate=completion_rate,
        skip_rate=skip_rate,
        failure_rate=failure_rate,
        engagement_score=engagement,
        difficulty_score=difficulty,
    )
    analytics.recommendations = progress_recommendations(analytics, blocker_count)

    trends = ProgressTrends(
        progress_velocity=average,
        engagement_trend=_trend(engagement, ENGAGEMENT_RISING, ENGAGEMENT_STEADY),
        difficulty_trend=_trend(difficulty, DIFFICULTY_RISING, DIFFICULTY_STEADY),
        time_efficiency=round(max(0.0, 100 - average / TARGET_STEP_MINUTES * 100), 2) if average > 0 else 100.0,
    )
    return analytics, trends


class ProgressTracker:
    def __init__(
        self,
        repository: OnboardingRepository,
        notifier: AnalyticsNotifier | None = None,
        backup_store: ProgressBackupStore | None = None,
        sync_conflict_seconds: int | None = None,
    ):
        self.repository = repository
        self.notifier = notifier or NullNotifier()
        self.backup_store = backup_store or NullBackupStore()
        self.sync_conflict_seconds = (
            sync_conflict_seconds if sync_conflict_seconds is not None else settings.ONBOARDING_SYNC_CONFLICT_SECONDS
        )

    async def _emit(self, event: str, payload: dict, **ids) -> None:
        try:
            await self.notifier.record(event, payload, **ids)
        except Exception as exc:
            logger.warning("onboarding.analytics_failed", analytics_event=event, error=str(exc))

    async def _require_session(self, session_id: str, operation: str) -> OnboardingSession:
        with storage_errors("Failed to load onboarding session", operation):
            session = await self.repository.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Onboarding session {session_id} not found")
        return session

    async def _session_path(self, session: OnboardingSession, operation: str) -> OnboardingPath | None:
        with storage_errors("Failed to load onboarding path", operation):
            path = await self.repository.get_path(session.path_id)
        if path is not None:
            path.steps = path.ordered_steps()
        return path

    # -- progress -----------------------------------------------------------

    async def track_step_progress(
        self,
        session_id: str,
        step_id: str,
        status: ProgressStatus,
        *,
        user_id: str | None = None,
        time_spent: int = 0,
        completion_rate: float | None = None,
        error_rate: float | None = None,
        user_actions: dict | None = None,
        errors: dict | None = None,
        backup: bool = True,
    ) -> StepProgress:
        """Insert or update the progress row for one step of a session."""
        now = _now()
        with storage_errors("Failed to track step progress", "track_step_progress"):
            existing = await self.repository.get_progress(session_id, step_id)
            row = existing or StepProgress(
                session_id=session_id,
                step_id=step_id,
                user_id=user_id,
                started_at=now,
            )
            previous = row.status if existing else "not_started"

            if _counts_as_attempt(previous, status):
                row.attempts += 1
            row.status = status
            row.user_id = row.user_id or user_id
            row.time_spent += max(0, int(time_spent))
            if completion_rate is not None:
                row.completion_rate = _clamp_rate(completion_rate)
            elif status == "completed":
                row.completion_rate = 1.0
            if error_rate is not None:
                row.error_rate = _clamp_rate(error_rate)
            if user_actions:
                row.user_actions = {**row.user_actions, **user_actions}
            if errors:
                row.errors = {**row.errors, **errors}
            if status == "completed":
                row.completed_at = row.completed_at or now
            else:
                row.completed_at = None

            saved = await self.repository.save_progress(row)

        logger.info(
            "onboarding.step_progress",
            session_id=session_id,
            step_id=step_id,
            status=status,
            attempts=saved.attempts,
        )
        await self._emit(
            "step_progress",
            {"status": status, "time_spent": time_spent, "attempts": saved.attempts},
            user_id=saved.user_id,
            session_id=session_id,
            step_id=step_id,
        )
        if backup:
            await self.backup_progress(session_id, user_id=saved.user_id)
        return saved

    async def start_step(self, session_id: str, step_id: str, user_id: str | None = None, **metrics) -> StepProgress:
        return await self.track_step_progress(session_id, step_id, "in_progress", user_id=user_id, **metrics)

    async def skip_step(self, session_id: str, step_id: str, user_id: str | None = None, **metrics) -> StepProgress:
        return await self.track_step_progress(session_id, step_id, "skipped", user_id=user_id, **metrics)

    async def fail_step(
        self,
        session_id: str,
        step_id: str,
        user_id: str | None = None,
        errors: dict | None = None,
        time_spent: int = 0,
        **metrics,
    ) -> StepProgress:
        return await self.track_step_progress(
            session_id, step_id, "failed", user_id=user_id, errors=errors, time_spent=time_spent, **metrics
        )

    async def record_step_completion(
        self, session_id: str, step_id: str, user_id: str, result: StepResult
    ) -> StepProgress:
        progress = await self.track_step_progress(
            session_id,
            step_id,
            "completed",
            user_id=user_id,
            time_spent=result.time_spent,
            completion_rate=result.completion_rate,
            error_rate=result.error_rate,
            user_actions=result.user_actions,
            errors=result.errors,
            backup=False,
        )

        try:
            await self.check_and_award_milestones(session_id, user_id, trigger_step_id=step_id)
            await self.refresh_session_progress(session_id)
        except OnboardingError as exc:
            logger.warning("onboarding.post_completion_failed", session_id=session_id, error=str(exc))
        # Backup must include achievements awarded above
        await self.backup_progress(session_id, user_id=user_id)
        return progress

    async def get_overall_progress(self, session_id: str) -> OverallProgress:
        session = await self._require_session(session_id, "get_overall_progress")
        path = await self._session_path(session, "get_overall_progress")
        steps = path.steps if path else []

        with storage_errors("Failed to get overall progress", "get_overall_progress"):
            rows = await self.repository.list_progress(session_id)
            achievements = await self.repository.list_achievements(session_id)

        by_step = {row.step_id: row for row in rows}
        in_path = [by_step[s.id] for s in steps if s.id in by_step]
        completed = [row.step_id for row in in_path if row.status == "completed"]
        skipped = [row.step_id for row in in_path if row.status == "skipped"]
        total = len(steps)
        overall = round(len(completed) / total * 100, 2) if total else 0.0

        upcoming = resolver.next_step(steps, in_path)
        current_index = steps.index(upcoming) if upcoming else total

        stamps = [_aware(ts) for ts in [session.updated_at, *(row.updated_at for row in in_path)] if ts]
        return OverallProgress(
            session_id=session_id,
            current_step_index=current_index,
            completed_steps=completed,
            skipped_steps=skipped,
            total_steps=total,
            overall_progress=overall,
            time_spent=sum(row.time_spent for row in in_path),
            milestones=achievements,
            last_updated=max(stamps) if stamps else None,
        )

    async def refresh_session_progress(self, session_id: str) -> OnboardingSession | None:
        """Copy aggregate progress onto the session row."""
        progress = await self.get_overall_progress(session_id)
        session = await self._require_session(session_id, "refresh_session_progress")
        path = await self._session_path(session, "refresh_session_progress")
        steps = path.steps if path else []
        current = steps[progress.current_step_index] if progress.current_step_index < len(steps) else None

        with storage_errors("Failed to update session progress", "refresh_session_progress"):
            return await self.repository.update_session(
                session_id,
                progress_percentage=progress.overall_progress,
                time_spent=progress.time_spent,
                current_step_index=progress.current_step_index,
                current_step_id=current.id if current else None,
            )

    async def get_user_behavior(self, session_id: str) -> UserBehavior:
        session = await self._require_session(session_id, "get_user_behavior")
        path = await self._session_path(session, "get_user_behavior")
        with storage_errors("Failed to load step progress", "get_user_behavior"):
            rows = await self.repository.list_progress(session_id)
        step_ids = {s.id for s in path.steps} if path else set()
        return derive_user_behavior(session, path, [r for r in rows if r.step_id in step_ids])

    # -- blockers -----------------------------------------------------------

    async def identify_blockers(self, session_id: str) -> list[Blocker]:
        session = await self._require_session(session_id, "identify_blockers")
        path = await self._session_path(session, "identify_blockers")
        with storage_errors("Failed to identify blockers", "identify_blockers"):
            rows = await self.repository.list_progress(session_id)

        steps = {s.id: s for s in path.steps} if path else {}
        now = _now()
        blockers: list[Blocker] = []
        for row in rows:
            step = steps.get(row.step_id)
            if step is None:
                continue
            blocker = self._step_blocker(row, step.title, step.estimated_time, now)
            if blocker:
                blockers.append(blocker)

        failed = sum(1 for r in rows if r.status == "failed" and r.step_id in steps)
        if failed >= FAILURE_PATTERN_THRESHOLD:
            blockers.append(
                Blocker(
                    step_id="pattern_based",
                    step_title="Overall Progress Pattern",
                    blocker_type="user_understanding",
                    description="User is consistently failing multiple steps",
                    suggested_resolution="Consider switching to an easier onboarding path or providing additional support",
                    severity="high",
                    frequency=failed,
                    patterns=["consistent_failures"],
                )
            )
        skipped = sum(1 for r in rows if r.status == "skipped" and r.step_id in steps)
        if skipped >= SKIP_PATTERN_THRESHOLD:
            blockers.append(
                Blocker(
                    step_id="pattern_based",
                    step_title="Overall Progress Pattern",
                    blocker_type="engagement",
                    description="User is skipping many steps, indicating low engagement",
                    suggested_resolution="Review content relevance and add more engaging elements",
                    severity="medium",
                    frequency=skipped,
                    patterns=["excessive_skipping"],
                )
            )
        return blockers

    @staticmethod
    def _step_blocker(row: StepProgress, title: str, estimate: int, now: datetime) -> Blocker | None:
        estimate = estimate or DEFAULT_STEP_ESTIMATE_MINUTES
        if row.status == "in_progress" and row.started_at:
            minutes = (now - _aware(row.started_at)).total_seconds() / 60
        else:
            minutes = row.time_spent / 60

        if not (
            row.status == "failed"
            or row.attempts > BLOCKER_ATTEMPTS
            or minutes > estimate * 2
            or row.errors
        ):
            return None

        patterns: list[str] = []
        blocker_type = "content"
        description = "User encountered difficulties with this step"
        resolution = "Review step content and provide additional guidance"
        severity = "low"

        error_keys = set(row.errors or {})
        if error_keys & {"validation", "input"}:
            blocker_type, severity = "user_understanding", "medium"
            description = "User input validation failures suggest understanding issues"
            resolution = "Provide clearer instructions and input examples"
            patterns.append("validation_failures")
        elif error_keys & {"technical", "system"}:
            blocker_type, severity = "technical", "high"
            description = "Technical errors are preventing step completion"
            resolution = "Check system functionality and provide technical support"
            patterns.append("technical_errors")
        elif error_keys & {"timeout", "network"}:
            blocker_type, severity = "system", "high"
            description = "System performance issues are affecting user experience"
            resolution = "Optimize system performance and check network connectivity"
            patterns.append("system_performance")

        if minutes > estimate * 3:
            patterns.append("excessive_time")
            if not error_keys:
                severity = "medium"
                description = "User is spending excessive time on this step"
                resolution = "Simplify content or provide additional guidance"

        if row.attempts > 5:
            patterns.append("multiple_attempts")
            severity = "high"
            if not error_keys:
                blocker_type = "user_understanding"
                description = "Multiple failed attempts indicate comprehension issues"
                resolution = "Provide alternative learning materials or one-on-one support"

        return Blocker(
            step_id=row.step_id,
            step_title=title,
            blocker_type=blocker_type,
            description=description,
            suggested_resolution=resolution,
            severity=severity,
            frequency=max(row.attempts, 1),
            time_stuck=round(minutes, 1),
            patterns=patterns,
        )

    # -- milestones ---------------------------------------------------------

    async def award_milestone(
        self, user_id: str, session_id: str, milestone_id: str, data: dict | None = None
    ) -> Achievement:
        with storage_errors("Failed to award milestone", "award_milestone"):
            achievement = await self.repository.add_achievement(
                Achievement(
                    user_id=user_id,
                    session_id=session_id,
                    milestone_id=milestone_id,
                    achievement_data=data or {},
                )
            )
        await self._emit(
            "milestone_awarded",
            {"milestone_id": milestone_id},
            user_id=user_id,
            session_id=session_id,
        )
        return achievement

    async def check_and_award_milestones(
        self, session_id: str, user_id: str, trigger_step_id: str | None = None
    ) -> list[Achievement]:
        """Award every active milestone whose criteria the session now meets."""
        with storage_errors("Failed to load milestones", "check_and_award_milestones"):
            milestones = await self.repository.list_milestones()
        if not milestones:
            return []

        progress = await self.get_overall_progress(session_id)
        earned = {a.milestone_id for a in progress.milestones}
        awarded = []
        for milestone in milestones:
            if milestone.id in earned or not _milestone_met(milestone, progress):
                continue
            awarded.append(
                await self.award_milestone(
                    user_id,
                    session_id,
                    milestone.id,
                    {"trigger_step": trigger_step_id, "progress_at_award": progress.overall_progress},
                )
            )
        if awarded:
            logger.info("onboarding.milestones_awarded", session_id=session_id, count=len(awarded))
        return awarded

    async def get_user_achievements(self, session_id: str) -> list[Achievement]:
        with storage_errors("Failed to load achievements", "get_user_achievements"):
            return await self.repository.list_achievements(session_id)

    # -- reporting ----------------------------------------------------------

    async def generate_progress_report(self, session_id: str) -> ProgressReport:
        session = await self._require_session(session_id, "generate_progress_report")
        path = await self._session_path(session, "generate_progress_report")
        overall = await self.get_overall_progress(session_id)
        blockers = await self.identify_blockers(session_id)
        achievements = await self.get_user_achievements(session_id)
        with storage_errors("Failed to generate progress report", "generate_progress_report"):
            rows = await self.repository.list_progress(session_id)

        step_ids = {s.id for s in path.steps} if path else set()
        analytics, trends = progress_analytics(
            [r for r in rows if r.step_id in step_ids], overall.time_spent, len(blockers)
        )
        return ProgressReport(
            session_id=session_id,
            overall_progress=overall,
            blockers=blockers,
            achievements=achievements,
            analytics=analytics,
            trends=trends,
        )

    async def get_available_badges(self, session_id: str) -> list[Badge]:
        """Every active milestone with the session's progress towards it."""
        with storage_errors("Failed to get available badges", "get_available_badges"):
            milestones = await self.repository.list_milestones()
        earned = {a.milestone_id for a in await self.get_user_achievements(session_id)}
        progress = await self.get_overall_progress(session_id)
        return [
            Badge(
                badge_id=m.id,
                name=m.name,
                description=m.description or "",
                criteria=m.criteria,
                is_earned=m.id in earned,
                progress=100.0 if m.id in earned else round(badge_progress(m, progress), 2),
            )
            for m in milestones
        ]

    async def generate_completion_certificate(self, session_id: str) -> CompletionCertificate:
        """Issue the certificate for a completed session. Repeat calls return the same certificate."""
        session = await self._require_session(session_id, "generate_completion_certificate")
        if session.status != "completed":
            raise ValidationError(f"Cannot issue a certificate for a {session.status} session")
        achievements = await self.get_user_achievements(session_id)

        metadata = dict(session.session_metadata or {})
        issued = metadata.get("certificate")
        if issued is None:
            path = await self._session_path(session, "generate_completion_certificate")
            issued = {
                "certificateId": f"cert_{uuid.uuid4().hex}",
                "issuedAt": _now().isoformat(),
                "pathName": path.name if path else "Unknown Path",
                "completionTime": session.time_spent,
            }
            metadata["certificate"] = issued
            with storage_errors("Failed to generate completion certificate", "generate_completion_certificate"):
                await self.repository.update_session(session_id, session_metadata=metadata)
            logger.info("onboarding.certificate_issued", session_id=session_id, certificate_id=issued["certificateId"])
            await self._emit(
                "certificate_issued",
                {"certificate_id": issued["certificateId"], "achievement_count": len(achievements)},
                user_id=session.user_id,
                session_id=session_id,
                path_id=session.path_id,
            )

        return CompletionCertificate(
            certificate_id=issued["certificateId"],
            certificate_url=f"/certificates/{issued['certificateId']}",
            issued_at=datetime.fromisoformat(issued["issuedAt"]),
            path_name=issued["pathName"],
            completion_time=issued["completionTime"],
            achievements=achievements,
        )

    # -- backup -------------------------------------------------------------

    async def backup_progress(self, session_id: str, user_id: str | None = None) -> bool:
        """Mirror the session's progress into the backup store. Never raises."""
        try:
            progress = await self.get_overall_progress(session_id)
            snapshot = BackupSnapshot(
                session_id=session_id,
                user_id=user_id,
                progress=_overall_adapter.dump_python(progress, mode="json"),
                achievements=_achievement_adapter.dump_python(progress.milestones, mode="json"),
                last_backup=_now(),
            )
            await self.backup_store.save(session_id, snapshot.model_dump_json())
        except Exception as exc:
            logger.warning("onboarding.backup_failed", session_id=session_id, error=str(exc))
            return False
        return True

    async def restore_progress_from_local_storage(self, session_id: str) -> RestoredProgress:
        """Read the last backup. Missing or unreadable backups yield an empty result."""
        try:
            raw = await self.backup_store.load(session_id)
            if not raw:
                return RestoredProgress()
            snapshot = BackupSnapshot.model_validate_json(raw)
        except Exception as exc:
            logger.warning("onboarding.restore_failed", session_id=session_id, error=str(exc))
            return RestoredProgress()
        return RestoredProgress(
            progress=snapshot.progress,
            achievements=snapshot.achievements,
            last_backup=snapshot.last_backup.isoformat(),
        )

    async def clear_backup(self, session_id: str) -> None:
        try:
            await self.backup_store.delete(session_id)
        except Exception as exc:
            logger.warning("onboarding.backup_clear_failed", session_id=session_id, error=str(exc))

    async def synchronize_progress(self, session_id: str, user_id: str | None = None) -> SyncResult:
        """Compare the backup with the server state, then refresh the backup."""
        try:
            backup = await self.restore_progress_from_local_storage(session_id)
            server = await self.get_overall_progress(session_id)
            conflicts: list[SyncConflict] = []

            if backup.progress and backup.last_backup and server.last_updated:
                backup_time = _aware(datetime.fromisoformat(backup.last_backup))
                drift = (backup_time - server.last_updated).total_seconds()
                if abs(drift) > self.sync_conflict_seconds:
                    conflicts.append(
                        SyncConflict(
                            type="progress",
                            local=backup.progress,
                            server=_overall_adapter.dump_python(server, mode="json"),
                            resolution="local_wins" if drift > 0 else "server_wins",
                        )
                    )

            await self.backup_progress(session_id, user_id=user_id)
        except OnboardingError as exc:
            logger.warning("onboarding.sync_failed", session_id=session_id, error=str(exc))
            return SyncResult(synchronized=False)
        return SyncResult(synchronized=True, conflicts=conflicts)
