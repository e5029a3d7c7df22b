"""Tests for the onboarding session lifecycle."""

from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import DatabaseError, NotFoundError, ValidationError
from app.services.onboarding.types import OnboardingContext, PathIssue, StepProgress
from tests.conftest import make_milestone, make_path, make_session


def _ctx(user_id: str, **overrides) -> OnboardingContext:
    return OnboardingContext(user_id=user_id, **{"user_role": "developer", **overrides})


def _progress(session, step, status: str) -> StepProgress:
    return StepProgress(session_id=session.id, step_id=step.id, status=status)


class TestInitializeOnboarding:
    @pytest.mark.asyncio
    async def test_creates_session_on_best_path(self, service, repo, notifier):
        path = repo.add_path(make_path("Dev Basics", steps=2))

        session = await service.initialize_onboarding("u1", _ctx("u1", organization_id="org-1"))

        assert session.status == "active"
        assert session.path_id == path.id
        assert session.current_step_id == path.steps[0].id
        assert session.organization_id == "org-1"
        assert session.session_metadata["userRole"] == "developer"
        assert session.id in repo.sessions
        assert notifier.names() == ["path_generated", "session_started"]

    @pytest.mark.asyncio
    async def test_returns_open_session(self, service, repo):
        repo.add_path(make_path(steps=1))
        first = await service.initialize_onboarding("u1", _ctx("u1"))
        second = await service.initialize_onboarding("u1", _ctx("u1"))
        assert second.id == first.id
        assert len(repo.sessions) == 1

    @pytest.mark.asyncio
    async def test_no_paths_for_role(self, service, repo):
        repo.add_path(make_path(target_role="developer"))
        with pytest.raises(ValidationError):
            await service.initialize_onboarding("u1", _ctx("u1", user_role="designer"))
        assert repo.sessions == {}

    @pytest.mark.asyncio
    async def test_completed_history_unlocks_prerequisites(self, service, repo):
        basics = repo.add_path(make_path("Basics", estimated_duration=200))
        advanced = repo.add_path(make_path("Advanced", prerequisites=[basics.id], estimated_duration=20))
        repo.add_session(make_session(basics, user_id="u1", status="completed"))

        session = await service.initialize_onboarding("u1", _ctx("u1", pace_preference="fast"))
        assert session.path_id == advanced.id


    @pytest.mark.asyncio
    async def test_struggles_in_finished_sessions_steer_selection(self, service, repo):
        old = repo.add_path(make_path("Old Basics", steps=1))
        fresh = repo.add_path(make_path("Fresh Basics", steps=1))
        done = repo.add_session(make_session(old, user_id="u1", status="completed"))
        await repo.save_progress(StepProgress(session_id=done.id, step_id=old.steps[0].id, status="skipped"))

        session = await service.initialize_onboarding("u1", _ctx("u1"))
        assert session.path_id == fresh.id


class TestUpdateProgress:
    @pytest.mark.asyncio
    async def test_completion_updates_session(self, service, repo):
        path = repo.add_path(make_path(steps=2))
        session = repo.add_session(make_session(path))

        progress = await service.update_onboarding_progress(
            session.id, path.steps[0].id, {"status": "completed", "time_spent": 30}
        )

        assert progress.status == "completed"
        stored = repo.sessions[session.id]
        assert stored.progress_percentage == 50.0
        assert stored.current_step_id == path.steps[1].id

    @pytest.mark.asyncio
    async def test_in_progress_refreshes_time(self, service, repo):
        path = repo.add_path(make_path(steps=2))
        session = repo.add_session(make_session(path))
        await service.update_onboarding_progress(session.id, path.steps[0].id, {"status": "in_progress", "time_spent": 40})
        assert repo.sessions[session.id].time_spent == 40

    @pytest.mark.asyncio
    async def test_statuses_route_through_tracker_helpers(self, service, repo):
        path = repo.add_path(make_path(steps=3, chain=False))
        session = repo.add_session(make_session(path))
        s1, s2, s3 = path.steps
        service.tracker.start_step = AsyncMock(return_value=_progress(session, s1, "in_progress"))
        service.tracker.skip_step = AsyncMock(return_value=_progress(session, s2, "skipped"))
        service.tracker.fail_step = AsyncMock(return_value=_progress(session, s3, "failed"))

        await service.update_onboarding_progress(session.id, s1.id, {"status": "in_progress", "time_spent": 5})
        await service.update_onboarding_progress(session.id, s2.id, {"status": "skipped"})
        await service.update_onboarding_progress(
            session.id, s3.id, {"status": "failed", "errors": {"validation": "bad"}, "error_rate": 0.6}
        )

        assert service.tracker.start_step.await_args.args == (session.id, s1.id, session.user_id)
        assert service.tracker.start_step.await_args.kwargs["time_spent"] == 5
        service.tracker.skip_step.assert_awaited_once()
        fail_kwargs = service.tracker.fail_step.await_args.kwargs
        assert fail_kwargs["errors"] == {"validation": "bad"}
        assert fail_kwargs["error_rate"] == 0.6

    @pytest.mark.asyncio
    async def test_failed_step_records_errors(self, service, repo):
        path = repo.add_path(make_path(steps=2, chain=False))
        session = repo.add_session(make_session(path))
        row = await service.update_onboarding_progress(
            session.id, path.steps[1].id, {"status": "failed", "errors": {"input": "missing"}, "time_spent": 20}
        )
        assert row.status == "failed"
        assert row.errors == {"input": "missing"}
        assert repo.sessions[session.id].time_spent == 20

    @pytest.mark.asyncio
    async def test_paused_session_rejected(self, service, repo):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path, status="paused"))
        with pytest.raises(ValidationError):
            await service.update_onboarding_progress(session.id, path.steps[0].id, {"status": "completed"})

    @pytest.mark.asyncio
    async def test_unknown_step(self, service, repo):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path))
        with pytest.raises(NotFoundError):
            await service.update_onboarding_progress(session.id, "not-a-step", {"status": "completed"})

    @pytest.mark.asyncio
    async def test_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.update_onboarding_progress("missing", "step", {"status": "completed"})


class TestCompleteSession:
    @pytest.mark.asyncio
    async def test_incomplete_path_reports_issues(self, service, repo):
        path = repo.add_path(make_path(steps=2))
        session = repo.add_session(make_session(path))
        with pytest.raises(ValidationError) as exc_info:
            await service.complete_onboarding_session(session.id)
        assert "Missing 2 required steps" in exc_info.value.issues
        assert repo.sessions[session.id].status == "active"

    @pytest.mark.asyncio
    async def test_complete_clears_backup_and_is_idempotent(self, service, repo, backup_store, notifier):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path))
        await service.update_onboarding_progress(session.id, path.steps[0].id, {"status": "completed"})
        assert session.id in backup_store.snapshots

        completed = await service.complete_onboarding_session(session.id)
        assert completed.status == "completed"
        assert completed.completed_at is not None
        assert completed.progress_percentage == 100.0
        assert session.id not in backup_store.snapshots

        again = await service.complete_onboarding_session(session.id)
        assert again.completed_at == completed.completed_at
        assert notifier.names().count("session_completed") == 1


class TestPauseResume:
    @pytest.mark.asyncio
    async def test_pause_then_resume(self, service, repo):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path))

        paused = await service.pause_onboarding_session(session.id)
        assert paused.status == "paused"
        assert paused.paused_at is not None

        resumed = await service.resume_onboarding_session(session.id)
        assert resumed.status == "active"
        assert resumed.paused_at is None

    @pytest.mark.asyncio
    async def test_invalid_transitions(self, service, repo):
        path = repo.add_path(make_path(steps=1))
        active = repo.add_session(make_session(path))
        done = repo.add_session(make_session(path, status="completed"))
        with pytest.raises(ValidationError):
            await service.resume_onboarding_session(active.id)
        with pytest.raises(ValidationError):
            await service.pause_onboarding_session(done.id)

    @pytest.mark.asyncio
    async def test_storage_failure(self, service, repo):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path))
        repo.update_session = AsyncMock(side_effect=RuntimeError("deadlock"))
        with pytest.raises(DatabaseError) as exc_info:
            await service.pause_onboarding_session(session.id)
        assert exc_info.value.operation == "pause_onboarding_session"


class TestAdaptAndSwitch:
    @pytest.mark.asyncio
    async def test_adapt_uses_recorded_behavior(self, service, repo):
        path = repo.add_path(make_path(steps=2, chain=False))
        session = repo.add_session(make_session(path))
        await service.update_onboarding_progress(
            session.id, path.steps[0].id, {"status": "failed", "error_rate": 0.8}
        )
        adjustment = await service.adapt_onboarding_path(session.id)
        assert adjustment.adjustment_type == "insert_remedial"
        assert path.steps[0].id in adjustment.affected_step_ids

    @pytest.mark.asyncio
    async def test_adjustment_history(self, service, repo):
        path = repo.add_path(make_path(steps=2, chain=False))
        session = repo.add_session(make_session(path))
        assert await service.list_path_adjustments(session.id) == []

        await service.update_onboarding_progress(session.id, path.steps[0].id, {"status": "failed", "error_rate": 0.8})
        await service.adapt_onboarding_path(session.id)

        history = await service.list_path_adjustments(session.id)
        assert [a.adjustment_type for a in history] == ["insert_remedial"]
        with pytest.raises(NotFoundError):
            await service.list_path_adjustments("missing")

    @pytest.mark.asyncio
    async def test_switch_path(self, service, repo, notifier):
        current = repo.add_path(make_path("Current", steps=2))
        other = repo.add_path(make_path("Other", steps=3))
        session = repo.add_session(make_session(current))
        await service.update_onboarding_progress(session.id, current.steps[0].id, {"status": "completed"})

        switched = await service.switch_to_alternative_path(session.id, other.id)

        assert switched.path_id == other.id
        assert switched.current_step_id == other.steps[0].id
        assert switched.progress_percentage == 0
        assert switched.session_metadata["previousPathIds"] == [current.id]
        assert "path_switched" in notifier.names()

    @pytest.mark.asyncio
    async def test_switch_rejections(self, service, repo):
        current = repo.add_path(make_path("Current", steps=1))
        session = repo.add_session(make_session(current))
        with pytest.raises(ValidationError):
            await service.switch_to_alternative_path(session.id, current.id)
        with pytest.raises(NotFoundError):
            await service.switch_to_alternative_path(session.id, "no-such-path")

    @pytest.mark.asyncio
    async def test_suggest_alternatives(self, service, repo):
        current = repo.add_path(make_path("Current"))
        other = repo.add_path(make_path("Other"))
        session = repo.add_session(make_session(current))
        alternatives = await service.suggest_alternative_paths(
            session.id, [PathIssue(type="pacing", severity="medium")]
        )
        assert [a.path_id for a in alternatives] == [other.id]


class TestQueries:
    @pytest.mark.asyncio
    async def test_next_step_and_progress(self, service, repo):
        path = repo.add_path(make_path(steps=2))
        session = repo.add_session(make_session(path))
        assert (await service.get_next_step(session.id)).id == path.steps[0].id
        progress = await service.get_progress(session.id)
        assert progress.total_steps == 2

    @pytest.mark.asyncio
    async def test_next_step_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.get_next_step("missing")

    @pytest.mark.asyncio
    async def test_synchronize_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.synchronize_progress("missing")


class TestReporting:
    @pytest.mark.asyncio
    async def test_report_and_badges(self, service, repo):
        path = repo.add_path(make_path(steps=2))
        session = repo.add_session(make_session(path))
        repo.milestones = [make_milestone("First Steps", "progress", {"steps_completed": 1})]
        await service.update_onboarding_progress(
            session.id, path.steps[0].id, {"status": "completed", "time_spent": 60}
        )

        report = await service.get_progress_report(session.id)
        badges = await service.get_available_badges(session.id)

        assert report.analytics.completion_rate == 100.0
        assert len(report.achievements) == 1
        assert [(b.name, b.is_earned) for b in badges] == [("First Steps", True)]

    @pytest.mark.asyncio
    async def test_certificate_after_completion(self, service, repo, notifier):
        path = repo.add_path(make_path(steps=1))
        session = repo.add_session(make_session(path))
        with pytest.raises(ValidationError):
            await service.generate_completion_certificate(session.id)

        await service.update_onboarding_progress(
            session.id, path.steps[0].id, {"status": "completed", "time_spent": 300}
        )
        await service.complete_onboarding_session(session.id)
        certificate = await service.generate_completion_certificate(session.id)

        assert certificate.path_name == path.name
        assert certificate.completion_time == 300
        assert "certificate_issued" in notifier.names()

    @pytest.mark.asyncio
    async def test_badges_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.get_available_badges("missing")
