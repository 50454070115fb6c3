import asyncio
from datetime import datetime, timezone

import pytest

from app.features.grading.errors import EngineBootstrapError, PersistenceConflict, SubmissionLockedError
from app.features.grading.schemas import REDACTED
from app.features.submissions.models import SubmissionStatus
from conftest import COURSE_START, make_assignment

pytestmark = pytest.mark.anyio("asyncio")

ADD_OK = "a = 1\nb = 2\n# solution code below\nprint(a + b)\n"


@pytest.fixture
async def seeded(assignments_repo, assignment):
    await assignments_repo.save_assignment(assignment)
    await assignments_repo.set_course_start_date(COURSE_START)
    return assignment


async def test_workspace_hydrates_starter_code(service, seeded):
    view = await service.load_workspace("u1", seeded.id)
    assert view.status == SubmissionStatus.not_started
    assert view.answers["add"].startswith("a = 1\nb = 2")
    assert "hello" not in view.answers
    assert view.due_at == datetime(2024, 1, 2, 13, tzinfo=timezone.utc)
    assert view.is_late is False
    # Hidden test cases never reach the notebook view.
    assert len(view.assignment.question("add").test_cases) == 1


async def test_workspace_prefers_saved_answers(service, seeded):
    await service.save_draft("u1", seeded.id, {"add": "print('mine')"})
    view = await service.load_workspace("u1", seeded.id)
    assert view.status == SubmissionStatus.in_progress
    assert view.answers["add"] == "print('mine')"


async def test_unknown_assignment(service):
    with pytest.raises(ValueError, match="assignment_not_found"):
        await service.load_workspace("u1", "missing")


async def test_draft_rejects_unknown_question(service, seeded):
    with pytest.raises(ValueError, match="question_not_found"):
        await service.save_draft("u1", seeded.id, {"ghost": "x"})


async def test_pre_check_auto_saves_and_keeps_score_empty(service, seeded, submissions_repo):
    result = await service.pre_check("u1", seeded.id, "add", {"add": ADD_OK})
    assert result.ratio == 1.0
    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.status == SubmissionStatus.in_progress
    assert record.saved_answers["add"] == ADD_OK
    assert record.validation_status["add"].passed == 1
    assert record.score is None


async def test_submit_on_time(service, seeded, submissions_repo):
    response = await service.submit("u1", seeded.id, {"add": ADD_OK, "hello": "print('hello')"})
    assert response.status == SubmissionStatus.submitted
    assert response.raw_score == 30
    assert response.final_score == 30
    assert response.is_late is False
    assert response.tests_total == 3
    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.score == 30
    assert record.results["add"].passed_all is True


async def test_submit_late_applies_penalty_once(service, seeded, clock, submissions_repo):
    clock.current = datetime(2024, 1, 2, 13, 0, 1, tzinfo=timezone.utc)
    response = await service.submit("u1", seeded.id, {"add": ADD_OK})
    assert response.is_late is True
    assert response.raw_score == 20
    assert response.final_score == 12
    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.score == 12
    assert record.raw_score == 20


async def test_submit_uses_saved_answers(service, seeded):
    await service.save_draft("u1", seeded.id, {"hello": "print('hello')"})
    response = await service.submit("u1", seeded.id, {})
    # Starter code for "add" has setup only, so only "hello" scores.
    assert response.raw_score == 10


async def test_submit_twice_conflicts_without_regrading(service, seeded, monkeypatch):
    await service.submit("u1", seeded.id, {"add": ADD_OK})

    async def fail_grade(*args, **kwargs):
        raise AssertionError("graded a locked submission")

    monkeypatch.setattr(service.engine, "grade", fail_grade)
    with pytest.raises(PersistenceConflict):
        await service.submit("u1", seeded.id, {"add": ADD_OK})


async def test_concurrent_submits_single_winner(service, seeded, submissions_repo):
    results = await asyncio.gather(
        service.submit("u1", seeded.id, {"add": ADD_OK}),
        service.submit("u1", seeded.id, {"add": "print(0)"}),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], PersistenceConflict)
    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.score == winners[0].final_score
    assert service._submit_locks == {}


async def test_cancelled_submit_leaves_record_untouched(service, seeded, session_manager, submissions_repo):
    await service.save_draft("u1", seeded.id, {"add": ADD_OK})
    sleeper = "import time\ntime.sleep(30)\nprint(0)"
    task = asyncio.create_task(service.submit("u1", seeded.id, {"hello": sleeper}))
    for _ in range(100):
        await asyncio.sleep(0.1)
        if any(s["alive"] for s in session_manager.describe()):
            break
    await asyncio.sleep(0.5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.status == SubmissionStatus.in_progress
    assert record.score is None
    assert service._submit_locks == {}
    result = await service.run_snippet("u1", seeded.id, "print('alive')")
    assert result.stdout == "alive\n"


async def test_locked_after_submit(service, seeded):
    await service.submit("u1", seeded.id, {"add": ADD_OK})
    with pytest.raises(SubmissionLockedError):
        await service.save_draft("u1", seeded.id, {"add": "x"})
    with pytest.raises(SubmissionLockedError):
        await service.pre_check("u1", seeded.id, "add", {"add": ADD_OK})


async def test_locked_assignment_rejects_work(service, assignments_repo):
    await assignments_repo.save_assignment(make_assignment(id="closed", is_locked=True))
    with pytest.raises(SubmissionLockedError, match="assignment_locked"):
        await service.save_draft("u1", "closed", {"add": "x"})


async def test_hidden_results_redacted_when_configured(service, seeded, settings):
    settings.reveal_hidden_results = False
    response = await service.submit("u1", seeded.id, {"add": ADD_OK})
    hidden = [t for t in response.questions["add"].tests if not t.visible]
    assert hidden and all(t.expected == REDACTED and t.actual == REDACTED for t in hidden)
    visible = [t for t in response.questions["add"].tests if t.visible]
    assert visible[0].expected == "12"


async def test_bootstrap_failure_leaves_record_untouched(service, seeded, submissions_repo, monkeypatch):
    await service.save_draft("u1", seeded.id, {"add": ADD_OK})

    async def broken_grade(*args, **kwargs):
        raise EngineBootstrapError("failed to load extension numpy", extension="numpy")

    monkeypatch.setattr(service.engine, "grade", broken_grade)
    with pytest.raises(EngineBootstrapError):
        await service.submit("u1", seeded.id, {})
    record = await submissions_repo.get_submission("u1", seeded.id)
    assert record.status == SubmissionStatus.in_progress
    assert record.score is None


async def test_no_course_start_means_never_late(service, assignments_repo, clock, settings):
    settings.course_start_date = None
    await assignments_repo.save_assignment(make_assignment())
    clock.current = datetime(2030, 1, 1, tzinfo=timezone.utc)
    response = await service.submit("u1", "day1-homework", {"add": ADD_OK})
    assert response.due_at is None
    assert response.is_late is False
    assert response.final_score == 20


async def test_run_snippet(service, seeded):
    result = await service.run_snippet("u1", seeded.id, "print(input('? '))", ["42"])
    assert result.stdout == "? 42\n42\n"


async def test_restart_session(service, seeded):
    await service.run_snippet("u1", seeded.id, "z = 1")
    sessions = await service.restart_session()
    assert sessions[0]["alive"] is True
