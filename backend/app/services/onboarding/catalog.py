"""Read-only access to published onboarding paths."""

import structlog

from app.core.exceptions import NotFoundError
from app.services.onboarding.repository import OnboardingRepository, storage_errors
from app.services.onboarding.resolver import find_cycles
from app.services.onboarding.types import WILDCARD_VALUES, OnboardingContext, OnboardingPath

logger = structlog.get_logger()


def _matches(path_value: str | None, context_value: str | None) -> bool:
    if path_value is None or path_value.lower() in WILDCARD_VALUES:
        return True
    if context_value is None:
        return True
    return path_value == context_value


class ContentCatalog:
    def __init__(self, repository: OnboardingRepository):
        self.repository = repository

    async def _active_paths(self) -> list[OnboardingPath]:
        with storage_errors("Failed to load onboarding paths", "list_active_paths"):
            paths = await self.repository.list_active_paths()
        for path in paths:
            path.steps = path.ordered_steps()
        return paths

    async def find_candidate_paths(self, context: OnboardingContext) -> list[OnboardingPath]:
        """Active paths matching role and tier whose prerequisites the user has completed."""
        completed = set(context.completed_paths)
        candidates = [
            path
            for path in await self._active_paths()
            if _matches(path.target_role, context.user_role)
            and _matches(path.subscription_tier, context.subscription_tier)
            and set(path.prerequisites) <= completed
        ]
        logger.debug(
            "onboarding.catalog.candidates",
            role=context.user_role,
            tier=context.subscription_tier,
            count=len(candidates),
        )
        return candidates

    async def find_path(self, path_id: str) -> OnboardingPath | None:
        with storage_errors("Failed to load onboarding path", "get_path"):
            path = await self.repository.get_path(path_id)
        if path is None or not path.is_active:
            return None
        path.steps = path.ordered_steps()
        return path

    async def get_path(self, path_id: str) -> OnboardingPath:
        path = await self.find_path(path_id)
        if path is None:
            raise NotFoundError(f"Onboarding path {path_id} not found")
        return path

    async def search_paths(self, query: str, limit: int = 20) -> list[OnboardingPath]:
        needle = query.strip().lower()
        if not needle:
            return []
        results = []
        for path in await self._active_paths():
            haystack = [path.name, path.description or "", *path.learning_objectives]
            if any(needle in text.lower() for text in haystack):
                results.append(path)
            if len(results) >= limit:
                break
        return results

    @staticmethod
    def validate_path_graph(path: OnboardingPath) -> list[str]:
        """Publish-time checks on a path's step dependencies."""
        problems: list[str] = []
        by_id = {s.id: s for s in path.steps}
        orders = [s.order for s in path.steps]
        if len(orders) != len(set(orders)):
            problems.append("Duplicate step order within path")

        for step in path.ordered_steps():
            for dep in step.dependencies:
                target = by_id.get(dep)
                if target is None:
                    problems.append(f'Step "{step.title}" depends on unknown step {dep}')
                elif target.order >= step.order:
                    problems.append(f'Step "{step.title}" depends on later step "{target.title}"')

        for cycle in find_cycles(path.steps):
            titles = " -> ".join(by_id[step_id].title for step_id in cycle)
            problems.append(f"Dependency cycle: {titles}")
        return problems
