"""Derive UserBehavior from persisted step progress.

Behavior is never stored; it is recomputed whenever adaptation needs it.
"""

from collections import Counter
from datetime import datetime, timezone

from app.services.onboarding.content import content_kind
from app.services.onboarding.types import (
    EngagementLevel,
    LearningProfile,
    OnboardingPath,
    OnboardingSession,
    Pace,
    StepInteraction,
    StepProgress,
    UserBehavior,
)

FAST_AVERAGE_SECONDS = 300
SLOW_AVERAGE_SECONDS = 900
STRUGGLING_ERROR_RATE = 0.3
PROFILE_STRUGGLE_RATE = 0.3
PROFILE_STRENGTH_RATE = 0.1

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _interaction(progress: StepProgress) -> StepInteraction:
    return StepInteraction(
        step_id=progress.step_id,
        time_spent=progress.time_spent,
        attempts=progress.attempts,
        completion_rate=progress.completion_rate,
        skip_rate=1.0 if progress.status == "skipped" else 0.0,
        error_rate=progress.error_rate,
    )


def _recency_key(progress: StepProgress, steps: dict) -> tuple[datetime, int]:
    """Oldest activity first; rows without timestamps fall back to step order."""
    touched = progress.updated_at or progress.started_at
    if touched is None:
        touched = _EPOCH
    elif touched.tzinfo is None:
        touched = touched.replace(tzinfo=timezone.utc)
    step = steps.get(progress.step_id)
    return touched, step.order if step else 0


def infer_pace(progress: list[StepProgress], default: Pace = "medium") -> Pace:
    timed = [p.time_spent for p in progress if p.time_spent > 0]
    if not timed:
        return default
    average = sum(timed) / len(timed)
    if average < FAST_AVERAGE_SECONDS:
        return "fast"
    if average > SLOW_AVERAGE_SECONDS:
        return "slow"
    return "medium"


def infer_engagement(progress: list[StepProgress]) -> EngagementLevel:
    touched = [p for p in progress if p.status != "not_started"]
    if not touched:
        return "medium"
    finished = sum(1 for p in touched if p.status == "completed")
    skipped = sum(1 for p in touched if p.status == "skipped")
    ratio = finished / len(touched)
    if ratio >= 0.8 and skipped == 0:
        return "high"
    if ratio < 0.4 or skipped / len(touched) > 0.3:
        return "low"
    return "medium"


def derive_user_behavior(
    session: OnboardingSession,
    path: OnboardingPath | None,
    progress: list[StepProgress],
) -> UserBehavior:
    steps = {s.id: s for s in path.steps} if path else {}
    progress = sorted(progress, key=lambda p: _recency_key(p, steps))

    struggling: list[str] = []
    kinds: Counter[str] = Counter()
    for row in progress:
        step = steps.get(row.step_id)
        overrun = step is not None and step.estimated_time > 0 and row.time_spent > step.estimated_time * 60 * 2
        if row.error_rate > STRUGGLING_ERROR_RATE or row.status == "failed" or overrun:
            struggling.append(row.step_id)
        if row.status == "completed" and step is not None:
            kind = content_kind(step.content)
            if kind:
                kinds[kind] += 1

    metadata = session.session_metadata or {}
    return UserBehavior(
        session_id=session.id,
        step_interactions=[_interaction(p) for p in progress if p.status != "not_started"],
        learning_style=metadata.get("learningStyle", "mixed"),
        pace_preference=infer_pace(progress, metadata.get("pacePreference", "medium")),
        engagement_level=infer_engagement(progress),
        struggling_areas=struggling,
        preferred_content_types=[kind for kind, _ in kinds.most_common()],
    )


def learning_profile(completed_path_ids: list[str], history: list[StepProgress]) -> LearningProfile:
    """Summarize progress rows from a user's completed sessions, one row per attempt at a step.

    A step is a struggling area when more than 30% of its rows were failed or
    skipped, and a strength when fewer than 10% were failed.
    """
    attempts: Counter[str] = Counter()
    failures: Counter[str] = Counter()
    skips: Counter[str] = Counter()
    for row in history:
        attempts[row.step_id] += 1
        if row.status == "failed":
            failures[row.step_id] += 1
        elif row.status == "skipped":
            skips[row.step_id] += 1

    return LearningProfile(
        completed_paths=sorted(set(completed_path_ids)),
        struggling_areas=[
            step_id
            for step_id, count in attempts.items()
            if (failures[step_id] + skips[step_id]) / count > PROFILE_STRUGGLE_RATE
        ],
        strengths=[step_id for step_id, count in attempts.items() if failures[step_id] / count < PROFILE_STRENGTH_RATE],
    )
