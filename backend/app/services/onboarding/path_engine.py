"""Path selection, adaptation and completion checks for onboarding sessions."""

from __future__ import annotations

import structlog

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.services.onboarding import resolver
from app.services.onboarding.behavior import learning_profile
from app.services.onboarding.catalog import ContentCatalog
from app.services.onboarding.notifier import AnalyticsNotifier, NullNotifier
from app.services.onboarding.repository import OnboardingRepository, storage_errors
from app.services.onboarding.scorer import rank_paths
from app.services.onboarding.types import (
    SEVERITY_RANK,
    AdjustmentType,
    AlternativePath,
    CompletionReport,
    LearningProfile,
    OnboardingContext,
    OnboardingPath,
    OnboardingSession,
    OnboardingStep,
    PathAdjustment,
    PathIssue,
    StepProgress,
    UserBehavior,
)

logger = structlog.get_logger()

REMEDIAL_ERROR_RATE = 0.5
REMEDIAL_ATTEMPTS = 3
SLOW_DOWN_ERROR_RATE = 0.3
SLOW_DOWN_ATTEMPTS = 2
SPEED_UP_COMPLETION_RATE = 0.9
SPEED_UP_ERROR_RATE = 0.1
MIN_SWITCH_INTERACTIONS = 3


def context_from_session(session: OnboardingSession) -> OnboardingContext:
    """Rebuild the matching context recorded when the session was created."""
    metadata = session.session_metadata or {}
    return OnboardingContext(
        user_id=session.user_id,
        organization_id=session.organization_id,
        user_role=metadata.get("userRole"),
        subscription_tier=metadata.get("subscriptionTier"),
        pace_preference=metadata.get("pacePreference", "medium"),
        learning_style=metadata.get("learningStyle", "mixed"),
    )


def determine_adjustment(
    path: OnboardingPath,
    behavior: UserBehavior,
    recent_window: int = 5,
) -> tuple[AdjustmentType, str, list[str]]:
    """Pick the highest-priority adjustment for the observed behavior.

    Returns (adjustment_type, reason, affected_step_ids).
    """
    steps = {s.id: s for s in path.steps}
    interactions = behavior.step_interactions

    recent = interactions[-recent_window:] if recent_window > 0 else []
    struggling = set(behavior.struggling_areas)
    recent_struggling = [i.step_id for i in recent if i.step_id in struggling]
    if len(recent) >= MIN_SWITCH_INTERACTIONS and len(recent_struggling) * 2 > len(recent):
        return (
            "switch_path",
            f"User struggling with {len(recent_struggling)} of the last {len(recent)} steps",
            recent_struggling,
        )

    required = [i for i in interactions if i.step_id in steps and steps[i.step_id].is_required]

    remedial = [
        i.step_id
        for i in required
        if i.error_rate >= REMEDIAL_ERROR_RATE or i.attempts >= REMEDIAL_ATTEMPTS
    ]
    if remedial:
        return "insert_remedial", f"Repeated errors on {len(remedial)} required steps", remedial

    slow = [
        i.step_id
        for i in required
        if i.error_rate >= SLOW_DOWN_ERROR_RATE or i.attempts >= SLOW_DOWN_ATTEMPTS
    ]
    if slow:
        return "slow_down", f"User needs more time on {len(slow)} required steps", slow

    def is_quick(step: OnboardingStep | None, time_spent: int) -> bool:
        return step is not None and step.estimated_time > 0 and time_spent < step.estimated_time * 60 / 2

    if len(interactions) >= 2 and all(
        i.completion_rate >= SPEED_UP_COMPLETION_RATE
        and i.error_rate <= SPEED_UP_ERROR_RATE
        and is_quick(steps.get(i.step_id), i.time_spent)
        for i in interactions
    ):
        seen = {i.step_id for i in interactions}
        optional = [s.id for s in path.ordered_steps() if not s.is_required and s.id not in seen]
        return "speed_up", "User is progressing quickly with few errors", optional

    return "none", "No adjustments needed", []


class PathEngine:
    def __init__(
        self,
        repository: OnboardingRepository,
        catalog: ContentCatalog | None = None,
        notifier: AnalyticsNotifier | None = None,
        recent_window: int | None = None,
    ):
        self.repository = repository
        self.catalog = catalog or ContentCatalog(repository)
        self.notifier = notifier or NullNotifier()
        self.recent_window = recent_window if recent_window is not None else settings.ONBOARDING_RECENT_STEP_WINDOW

    async def _emit(self, event: str, payload: dict, **ids) -> None:
        try:
            await self.notifier.record(event, payload, **ids)
        except Exception as exc:
            logger.warning("onboarding.analytics_failed", analytics_event=event, error=str(exc))

    async def _session_and_path(
        self, session_id: str, operation: str
    ) -> tuple[OnboardingSession | None, OnboardingPath | None]:
        with storage_errors(f"Failed to load session for {operation}", operation):
            session = await self.repository.get_session(session_id)
            if session is None:
                return None, None
            path = await self.repository.get_path(session.path_id)
        if path is not None:
            path.steps = path.ordered_steps()
        return session, path

    async def get_user_learning_profile(self, user_id: str) -> LearningProfile:
        """Derive completed paths, struggling areas and strengths from the user's finished sessions."""
        with storage_errors("Failed to load learning profile", "get_user_learning_profile"):
            completed = await self.repository.list_completed_path_ids(user_id)
            history = await self.repository.list_completed_session_progress(user_id)
        return learning_profile(completed, history)

    async def generate_personalized_path(self, user_id: str, context: OnboardingContext) -> OnboardingPath:
        profile = await self.get_user_learning_profile(user_id)
        context.completed_paths = sorted(set(context.completed_paths) | set(profile.completed_paths))
        context.struggling_areas = profile.struggling_areas
        context.strengths = profile.strengths

        candidates = await self.catalog.find_candidate_paths(context)
        if not candidates:
            logger.info("onboarding.no_candidate_paths", user_id=user_id, role=context.user_role)
            raise ValidationError("No suitable onboarding paths found for user context")

        ranked = rank_paths(candidates, context)
        path, score = ranked[0]
        logger.info(
            "onboarding.path_selected",
            user_id=user_id,
            path_id=path.id,
            score=score,
            candidates=len(candidates),
        )
        await self._emit(
            "path_generated",
            {
                "selected_path_id": path.id,
                "score": score,
                "candidate_count": len(candidates),
                "user_role": context.user_role,
                "subscription_tier": context.subscription_tier,
                "pace_preference": context.pace_preference,
            },
            user_id=user_id,
            organization_id=context.organization_id,
            path_id=path.id,
        )
        return path

    async def adapt_path(self, session_id: str, behavior: UserBehavior) -> PathAdjustment:
        """Record an advisory adjustment for the session. The session's path is left as is."""
        session, path = await self._session_and_path(session_id, "adapt_path")
        if session is None:
            raise NotFoundError(f"Onboarding session {session_id} not found")
        if path is None:
            raise NotFoundError(f"Onboarding path {session.path_id} not found")

        adjustment_type, reason, affected = determine_adjustment(path, behavior, self.recent_window)
        adjustment = PathAdjustment(
            session_id=session.id,
            adjustment_type=adjustment_type,
            adjustment_reason=reason,
            affected_step_ids=affected,
        )
        if adjustment_type == "none":
            return adjustment

        with storage_errors("Failed to adapt onboarding path", "adapt_path"):
            adjustment = await self.repository.append_adjustment(adjustment)

        logger.info(
            "onboarding.path_adapted",
            session_id=session.id,
            adjustment_type=adjustment_type,
            affected=len(affected),
        )
        await self._emit(
            "path_adapted",
            {
                "adjustment_type": adjustment_type,
                "adjustment_reason": reason,
                "affected_step_ids": affected,
                "engagement_level": behavior.engagement_level,
            },
            user_id=session.user_id,
            organization_id=session.organization_id,
            session_id=session.id,
            path_id=session.path_id,
        )
        return adjustment

    async def get_next_step(
        self, session_id: str, progress: list[StepProgress] | None = None
    ) -> OnboardingStep | None:
        session, path = await self._session_and_path(session_id, "get_next_step")
        if session is None or path is None:
            return None
        if progress is None:
            with storage_errors("Failed to load step progress", "get_next_step"):
                progress = await self.repository.list_progress(session_id)
        return resolver.next_step(path.steps, progress)

    async def suggest_alternative_paths(self, session_id: str, issues: list[PathIssue]) -> list[AlternativePath]:
        with storage_errors("Failed to suggest alternative paths", "suggest_alternative_paths"):
            session = await self.repository.get_session(session_id)
            if session is None:
                raise NotFoundError(f"Onboarding session {session_id} not found")
            if not issues:
                return []

            context = context_from_session(session)
            context.completed_paths = await self.repository.list_completed_path_ids(session.user_id)
            candidates = await self.catalog.find_candidate_paths(context)

        alternatives: dict[str, AlternativePath] = {}
        for issue in sorted(issues, key=lambda i: SEVERITY_RANK.get(i.severity, 0), reverse=True):
            for path in candidates:
                if path.id == session.path_id or path.id in alternatives:
                    continue
                alternatives[path.id] = AlternativePath(
                    path_id=path.id,
                    path_name=path.name,
                    reason=f"Alternative path to address {issue.type} issues",
                    estimated_duration=path.estimated_duration,
                    severity=issue.severity,
                    focus_areas=[issue.type],
                )

        return sorted(
            alternatives.values(),
            key=lambda a: (-SEVERITY_RANK.get(a.severity, 0), a.estimated_duration),
        )

    async def validate_path_completion(self, session_id: str) -> CompletionReport:
        session, path = await self._session_and_path(session_id, "validate_path_completion")
        if session is None or path is None:
            return CompletionReport(
                is_valid=False,
                completion_percentage=0.0,
                issues=["Session or path not found"],
            )
        with storage_errors("Failed to load step progress", "validate_path_completion"):
            progress = await self.repository.list_progress(session_id)
        return resolver.validate_completion(path.steps, progress)
