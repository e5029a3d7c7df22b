"""Tests for personalization scoring."""

from datetime import datetime, timezone

import pytest

from app.services.onboarding.scorer import rank_paths, score_duration_for_pace, score_path
from app.services.onboarding.types import OnboardingContext
from tests.conftest import make_path


@pytest.mark.parametrize(
    ("duration", "pace", "expected"),
    [
        (20, "fast", 10),
        (30, "fast", 10),
        (45, "fast", 5),
        (75, "fast", 0),
        (120, "fast", -5),
        (120, "slow", 10),
        (60, "slow", 5),
        (45, "slow", 0),
        (20, "slow", -5),
        (45, "medium", 10),
        (75, "medium", 10),
        (30, "medium", 0),
        (120, "medium", 0),
    ],
)
def test_duration_for_pace(duration, pace, expected):
    assert score_duration_for_pace(duration, pace) == expected


class TestScorePath:
    def test_exact_role_beats_wildcard(self):
        ctx = OnboardingContext(user_id="u", user_role="developer")
        exact = make_path(target_role="developer")
        wildcard = make_path(target_role="any")
        assert score_path(exact, ctx) == score_path(wildcard, ctx) + 10

    def test_tier_bonus(self):
        ctx = OnboardingContext(user_id="u", user_role="developer", subscription_tier="pro")
        exact = make_path(subscription_tier="pro")
        open_tier = make_path(subscription_tier=None)
        assert score_path(exact, ctx) - score_path(open_tier, ctx) == 7

    def test_fast_pace_prefers_short_path(self):
        ctx = OnboardingContext(user_id="u", user_role="developer", pace_preference="fast")
        short = make_path(estimated_duration=20)
        long = make_path(estimated_duration=120)
        assert score_path(short, ctx) >= score_path(long, ctx)

    def test_struggling_and_strength_steps(self):
        path = make_path(steps=2, chain=False)
        s1, s2 = path.steps
        base = score_path(path, OnboardingContext(user_id="u", user_role="developer"))
        ctx = OnboardingContext(user_id="u", user_role="developer", struggling_areas=[s1.id], strengths=[s2.id])
        assert score_path(path, ctx) == base - 5 + 3


class TestRankPaths:
    def test_highest_score_first(self):
        ctx = OnboardingContext(user_id="u", user_role="developer", pace_preference="fast")
        a = make_path("Dev Path A", estimated_duration=60)
        b = make_path("Dev Path B", estimated_duration=20)
        ranked = rank_paths([a, b], ctx)
        assert [p.name for p, _ in ranked] == ["Dev Path B", "Dev Path A"]

    def test_ties_prefer_recently_updated(self):
        ctx = OnboardingContext(user_id="u", user_role="developer")
        old = make_path("Old", updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        new = make_path("New", updated_at=datetime(2026, 6, 1, tzinfo=timezone.utc))
        ranked = rank_paths([old, new], ctx)
        assert ranked[0][0].name == "New"
        assert ranked[0][1] == ranked[1][1]
