"""Personalization scoring of candidate paths against a user context."""

from datetime import datetime, timezone

from app.services.onboarding.types import WILDCARD_VALUES, OnboardingContext, OnboardingPath, Pace

BASE_SCORE = 10
ROLE_EXACT_BONUS = 20
ROLE_WILDCARD_BONUS = 10
TIER_EXACT_BONUS = 15
TIER_WILDCARD_BONUS = 8
STRUGGLING_STEP_PENALTY = 5
STRENGTH_STEP_BONUS = 3

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def score_duration_for_pace(duration: int, pace: Pace) -> int:
    if pace == "fast":
        if duration <= 30:
            return 10
        if duration <= 60:
            return 5
        if duration > 90:
            return -5
        return 0
    if pace == "slow":
        if duration >= 90:
            return 10
        if duration >= 60:
            return 5
        if duration < 30:
            return -5
        return 0
    return 10 if 45 <= duration <= 75 else 0


def _is_wildcard(value: str | None) -> bool:
    return value is None or value.lower() in WILDCARD_VALUES


def score_path(path: OnboardingPath, context: OnboardingContext) -> int:
    score = BASE_SCORE

    if context.user_role and path.target_role == context.user_role:
        score += ROLE_EXACT_BONUS
    elif _is_wildcard(path.target_role):
        score += ROLE_WILDCARD_BONUS

    if context.subscription_tier and path.subscription_tier == context.subscription_tier:
        score += TIER_EXACT_BONUS
    elif _is_wildcard(path.subscription_tier):
        score += TIER_WILDCARD_BONUS

    struggling = set(context.struggling_areas)
    strengths = set(context.strengths)
    for step in path.steps:
        if step.id in struggling or step.step_type in struggling:
            score -= STRUGGLING_STEP_PENALTY
        if step.id in strengths or step.step_type in strengths:
            score += STRENGTH_STEP_BONUS

    return score + score_duration_for_pace(path.estimated_duration, context.pace_preference)


def _updated_key(path: OnboardingPath) -> datetime:
    if path.updated_at is None:
        return _EPOCH
    if path.updated_at.tzinfo is None:
        return path.updated_at.replace(tzinfo=timezone.utc)
    return path.updated_at


def rank_paths(paths: list[OnboardingPath], context: OnboardingContext) -> list[tuple[OnboardingPath, int]]:
    """Paths with their scores, best first. Ties go to the most recently updated path."""
    scored = [(path, score_path(path, context)) for path in paths]
    scored.sort(key=lambda item: (item[1], _updated_key(item[0])), reverse=True)
    return scored
