"""Dependency resolution over a path's steps.

Pure functions: nothing here touches storage or raises.
"""

from collections.abc import Iterable, Mapping

from app.services.onboarding.types import CompletionReport, OnboardingStep, StepProgress

_DONE_STATUSES = frozenset({"completed", "skipped"})


def status_by_step(progress: Iterable[StepProgress]) -> dict[str, str]:
    return {p.step_id: p.status for p in progress}


def _dependencies_completed(step: OnboardingStep, statuses: Mapping[str, str]) -> bool:
    return all(statuses.get(dep) == "completed" for dep in step.dependencies)


def next_step(steps: Iterable[OnboardingStep], progress: Iterable[StepProgress]) -> OnboardingStep | None:
    """Lowest-order step that is still open and whose dependencies are all completed.

    Returns None when everything is done or nothing is eligible (for example
    when a dependency points at a step that can never complete).
    """
    statuses = status_by_step(progress)
    for step in sorted(steps, key=lambda s: s.order):
        if statuses.get(step.id) in _DONE_STATUSES:
            continue
        if _dependencies_completed(step, statuses):
            return step
    return None


def completion_percentage(steps: list[OnboardingStep], statuses: Mapping[str, str]) -> float:
    if not steps:
        return 0.0
    required = [s for s in steps if s.is_required]
    if not required:
        return 100.0
    done = sum(1 for s in required if statuses.get(s.id) == "completed")
    return round(done / len(required) * 100, 2)


def validate_completion(steps: Iterable[OnboardingStep], progress: Iterable[StepProgress]) -> CompletionReport:
    steps = sorted(steps, key=lambda s: s.order)
    statuses = status_by_step(progress)

    if not steps:
        return CompletionReport(
            is_valid=False,
            completion_percentage=0.0,
            issues=["Path has no steps defined"],
        )

    issues: list[str] = []
    missing = [s.id for s in steps if s.is_required and statuses.get(s.id) != "completed"]
    if missing:
        issues.append(f"Missing {len(missing)} required steps")

    violations: list[str] = []
    for step in steps:
        if statuses.get(step.id) == "completed" and not _dependencies_completed(step, statuses):
            violations.append(step.id)
            issues.append(f'Step "{step.title}" completed without meeting dependencies')

    return CompletionReport(
        is_valid=not missing and not violations,
        completion_percentage=completion_percentage(steps, statuses),
        issues=issues,
        missing_steps=missing,
        dependency_violations=violations,
    )


def find_cycles(steps: Iterable[OnboardingStep]) -> list[list[str]]:
    """Return each dependency cycle once, as the list of step ids along it."""
    graph = {s.id: [d for d in s.dependencies] for s in steps}
    visiting: list[str] = []
    state: dict[str, int] = {}  # 1 = on stack, 2 = done
    cycles: list[list[str]] = []
    seen: set[frozenset[str]] = set()

    def visit(node: str) -> None:
        state[node] = 1
        visiting.append(node)
        for dep in graph.get(node, []):
            if dep not in graph:
                continue
            if state.get(dep) == 1:
                cycle = visiting[visiting.index(dep):]
                key = frozenset(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(list(cycle))
            elif dep not in state:
                visit(dep)
        visiting.pop()
        state[node] = 2

    for node in graph:
        if node not in state:
            visit(node)
    return cycles
