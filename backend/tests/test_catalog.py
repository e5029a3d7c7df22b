"""Tests for the content catalog."""

from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import DatabaseError, NotFoundError
from app.services.onboarding.catalog import ContentCatalog
from app.services.onboarding.types import OnboardingContext
from tests.conftest import make_path, make_step
from tests.fakes import InMemoryOnboardingRepository


def _ctx(**overrides) -> OnboardingContext:
    defaults = {"user_id": "u1", "user_role": "developer", "subscription_tier": "pro"}
    defaults.update(overrides)
    return OnboardingContext(**defaults)


class TestFindCandidatePaths:
    @pytest.mark.asyncio
    async def test_matches_role_tier_and_wildcards(self):
        dev = make_path("Dev", target_role="developer", subscription_tier="pro")
        anyone = make_path("Anyone", target_role="any")
        star = make_path("Star", target_role="*", subscription_tier="any")
        designer = make_path("Design", target_role="designer")
        enterprise = make_path("Enterprise", target_role="developer", subscription_tier="enterprise")
        catalog = ContentCatalog(InMemoryOnboardingRepository([dev, anyone, star, designer, enterprise]))

        names = {p.name for p in await catalog.find_candidate_paths(_ctx())}
        assert names == {"Dev", "Anyone", "Star"}

    @pytest.mark.asyncio
    async def test_prerequisites_must_be_completed(self):
        advanced = make_path("Advanced", prerequisites=["basics"])
        catalog = ContentCatalog(InMemoryOnboardingRepository([advanced]))

        assert await catalog.find_candidate_paths(_ctx()) == []
        found = await catalog.find_candidate_paths(_ctx(completed_paths=["basics"]))
        assert [p.name for p in found] == ["Advanced"]

    @pytest.mark.asyncio
    async def test_inactive_paths_excluded(self):
        catalog = ContentCatalog(InMemoryOnboardingRepository([make_path("Old", is_active=False)]))
        assert await catalog.find_candidate_paths(_ctx()) == []

    @pytest.mark.asyncio
    async def test_steps_returned_in_order(self):
        path = make_path(steps=0)
        path.steps = [make_step(path.id, 3), make_step(path.id, 1), make_step(path.id, 2)]
        catalog = ContentCatalog(InMemoryOnboardingRepository([path]))
        found = await catalog.find_candidate_paths(_ctx())
        assert [s.order for s in found[0].steps] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_storage_failure_wrapped(self):
        repo = AsyncMock()
        repo.list_active_paths.side_effect = ConnectionError("db down")
        catalog = ContentCatalog(repo)
        with pytest.raises(DatabaseError) as exc_info:
            await catalog.find_candidate_paths(_ctx())
        assert exc_info.value.operation == "list_active_paths"
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestGetPath:
    @pytest.mark.asyncio
    async def test_get_path(self):
        path = make_path(steps=2)
        catalog = ContentCatalog(InMemoryOnboardingRepository([path]))
        assert (await catalog.get_path(path.id)).id == path.id

    @pytest.mark.asyncio
    async def test_missing_or_inactive_raises(self):
        inactive = make_path(is_active=False)
        catalog = ContentCatalog(InMemoryOnboardingRepository([inactive]))
        with pytest.raises(NotFoundError):
            await catalog.get_path(inactive.id)
        with pytest.raises(NotFoundError):
            await catalog.get_path("does-not-exist")
        assert await catalog.find_path("does-not-exist") is None


class TestSearchPaths:
    @pytest.mark.asyncio
    async def test_search_name_description_objectives(self):
        a = make_path("API Quickstart")
        b = make_path("Billing", learning_objectives=["Configure API keys"])
        c = make_path("Design System")
        catalog = ContentCatalog(InMemoryOnboardingRepository([a, b, c]))

        names = {p.name for p in await catalog.search_paths("api")}
        assert names == {"API Quickstart", "Billing"}
        assert len(await catalog.search_paths("api", limit=1)) == 1
        assert await catalog.search_paths("   ") == []


class TestValidatePathGraph:
    def test_valid_chain(self):
        assert ContentCatalog.validate_path_graph(make_path(steps=3)) == []

    def test_reports_problems(self):
        path = make_path(steps=0)
        first = make_step(path.id, 1, "First", step_id="a", dependencies=["b"])
        second = make_step(path.id, 2, "Second", step_id="b", dependencies=["a"])
        third = make_step(path.id, 3, "Third", step_id="c", dependencies=["ghost"])
        path.steps = [first, second, third]

        problems = ContentCatalog.validate_path_graph(path)
        assert 'Step "First" depends on later step "Second"' in problems
        assert 'Step "Third" depends on unknown step ghost' in problems
        assert any(p.startswith("Dependency cycle") for p in problems)
