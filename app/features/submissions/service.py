from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Mapping, Optional, Tuple

from app.common.clock import Clock, system_clock
from app.core.config import Settings, get_settings
from app.features.assignments.deadlines import DeadlineCalculator
from app.features.assignments.repository import AssignmentsRepository
from app.features.assignments.schemas import AssignmentSchema
from app.features.execution.session import SessionManager
from app.features.grading.engine import GradingEngine
from app.features.grading.errors import PersistenceConflict, SubmissionLockedError
from app.features.grading.schemas import PreCheckResultSchema, QuestionResultSchema, SnippetRunSchema
from app.features.submissions.models import SubmissionStatus
from app.features.submissions.repository import SubmissionsRepository
from app.features.submissions.schemas import (
    AssignmentWorkspaceSchema,
    SubmissionRecordSchema,
    SubmitResponseSchema,
    ValidationSnapshotSchema,
)
from app.features.submissions.state_machine import SubmissionStateMachine, status_of

logger = logging.getLogger(__name__)


def _redact(results: Mapping[str, QuestionResultSchema]) -> Dict[str, QuestionResultSchema]:
    return {
        qid: result.model_copy(update={"tests": [t.redacted() for t in result.tests]})
        for qid, result in results.items()
    }


class _KeyedLock:
    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class AssignmentGradingService:
    """Draft saves, pre-checks, final submission and free runs for one user's assignment."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        engine: Optional[GradingEngine] = None,
        assignments: Optional[AssignmentsRepository] = None,
        submissions: Optional[SubmissionsRepository] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or GradingEngine(SessionManager(self.settings), self.settings)
        self._assignments = assignments
        self._submissions = submissions
        self._state_machine: Optional[SubmissionStateMachine] = None
        self.clock = clock
        self.deadlines = DeadlineCalculator(self.settings)
        self._submit_locks: Dict[Tuple[str, str], _KeyedLock] = {}

    # Repositories bind to the database on first use.
    @property
    def assignments(self) -> AssignmentsRepository:
        if self._assignments is None:
            self._assignments = AssignmentsRepository(settings=self.settings)
        return self._assignments

    @property
    def submissions(self) -> SubmissionsRepository:
        if self._submissions is None:
            self._submissions = SubmissionsRepository()
        return self._submissions

    @property
    def state_machine(self) -> SubmissionStateMachine:
        if self._state_machine is None:
            self._state_machine = SubmissionStateMachine(self.submissions)
        return self._state_machine

    async def get_assignment(self, assignment_id: str) -> AssignmentSchema:
        assignment = await self.assignments.get_assignment_content(assignment_id)
        if assignment is None:
            raise ValueError("assignment_not_found")
        return assignment

    def _ensure_open(self, assignment: AssignmentSchema) -> None:
        if assignment.is_locked:
            raise SubmissionLockedError("assignment_locked")

    async def due_date_for(self, assignment: AssignmentSchema):
        course_start = await self.assignments.get_course_start_date()
        return self.deadlines.due_date(course_start, assignment.day_index)

    def _redact_if_hidden(self, results: Mapping[str, QuestionResultSchema]) -> Dict[str, QuestionResultSchema]:
        if self.settings.reveal_hidden_results:
            return dict(results)
        return _redact(results)

    @staticmethod
    def _merge_answers(assignment: AssignmentSchema, record: Optional[SubmissionRecordSchema],
                       answers: Mapping[str, str]) -> Dict[str, str]:
        """Starter code, then saved answers, then the answers sent with this request."""
        merged = assignment.starter_answers()
        if record is not None:
            merged.update(record.saved_answers)
        merged.update(answers)
        return merged

    @asynccontextmanager
    async def _submit_lock(self, user_id: str, assignment_id: str) -> AsyncIterator[None]:
        """Serialise submits per (user, assignment); the entry is dropped with its last holder."""
        key = (user_id, assignment_id)
        entry = self._submit_locks.get(key)
        if entry is None:
            entry = self._submit_locks[key] = _KeyedLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._submit_locks.pop(key, None)

    async def load_workspace(self, user_id: str, assignment_id: str) -> AssignmentWorkspaceSchema:
        assignment = await self.get_assignment(assignment_id)
        record = await self.submissions.get_submission(user_id, assignment_id)
        due_at = await self.due_date_for(assignment)
        # Students only ever see visible test cases before grading.
        public = assignment.model_copy(update={
            "questions": [q.model_copy(update={"test_cases": q.visible_tests()}) for q in assignment.questions],
        })
        status = status_of(record)
        return AssignmentWorkspaceSchema(
            assignment=public,
            answers=self._merge_answers(assignment, record, {}),
            status=status,
            validation_status=record.validation_status if record else {},
            due_at=due_at,
            is_late=record.is_late if status == SubmissionStatus.submitted else self.deadlines.is_late(due_at, self.clock.now()),
            score=record.score if record else None,
            raw_score=record.raw_score if record else None,
            results=self._redact_if_hidden(record.results) if record and record.results else None,
        )

    async def save_draft(self, user_id: str, assignment_id: str, answers: Mapping[str, str]) -> SubmissionRecordSchema:
        assignment = await self.get_assignment(assignment_id)
        self._ensure_open(assignment)
        unknown = [qid for qid in answers if qid not in {q.id for q in assignment.questions}]
        if unknown:
            raise ValueError("question_not_found")
        return await self.state_machine.save_draft(user_id, assignment_id, answers, now=self.clock.now())

    async def pre_check(self, user_id: str, assignment_id: str, question_id: str,
                        answers: Mapping[str, str]) -> PreCheckResultSchema:
        assignment = await self.get_assignment(assignment_id)
        self._ensure_open(assignment)
        assignment.question(question_id)
        record = await self.submissions.get_submission(user_id, assignment_id)
        if status_of(record) == SubmissionStatus.submitted:
            raise SubmissionLockedError()

        merged = self._merge_answers(assignment, record, answers)
        result = await self.engine.pre_check(assignment, question_id, merged)
        now = self.clock.now()
        snapshot = ValidationSnapshotSchema(
            ratio=result.ratio, passed=result.passed, total=result.total, log=result.log, checked_at=now,
        )
        await self.state_machine.record_pre_check(
            user_id, assignment_id, {question_id: merged.get(question_id, "")}, question_id, snapshot, now=now,
        )
        logger.info("precheck user=%s assignment=%s question=%s ratio=%.2f",
                    user_id, assignment_id, question_id, result.ratio)
        return result

    async def submit(self, user_id: str, assignment_id: str, answers: Mapping[str, str]) -> SubmitResponseSchema:
        assignment = await self.get_assignment(assignment_id)
        self._ensure_open(assignment)
        async with self._submit_lock(user_id, assignment_id):
            record = await self.submissions.get_submission(user_id, assignment_id)
            if status_of(record) == SubmissionStatus.submitted:
                raise PersistenceConflict(current_status=SubmissionStatus.submitted.value)

            merged = self._merge_answers(assignment, record, answers)
            due_at = await self.due_date_for(assignment)
            late = self.deadlines.is_late(due_at, self.clock.now())

            outcome = await self.engine.grade(assignment, merged)
            final_score = self.engine.apply_late_penalty(outcome.raw_total, late)
            now = self.clock.now()
            stored = await self.state_machine.submit(
                record,
                user_id=user_id,
                assignment_id=assignment_id,
                answers=merged,
                results=outcome.questions,
                raw_score=outcome.raw_total,
                final_score=final_score,
                max_score=outcome.max_total,
                is_late=late,
                now=now,
            )
        logger.info(
            "submit user=%s assignment=%s raw=%s final=%s/%s late=%s",
            user_id, assignment_id, outcome.raw_total, final_score, outcome.max_total, late,
        )
        return SubmitResponseSchema(
            assignment_id=assignment_id,
            status=stored.status,
            raw_score=outcome.raw_total,
            final_score=final_score,
            max_score=outcome.max_total,
            is_late=late,
            due_at=due_at,
            submitted_at=now,
            tests_passed=outcome.tests_passed,
            tests_total=outcome.tests_total,
            questions=self._redact_if_hidden(outcome.questions),
        )

    async def run_snippet(self, user_id: str, assignment_id: str, code: str,
                          inputs: Optional[List[str]] = None) -> SnippetRunSchema:
        assignment = await self.get_assignment(assignment_id)
        record = await self.submissions.get_submission(user_id, assignment_id)
        if status_of(record) == SubmissionStatus.submitted:
            raise SubmissionLockedError()
        result = await self.engine.execute_snippet(assignment, code, inputs)
        logger.debug("run user=%s assignment=%s error=%s", user_id, assignment_id, bool(result.error))
        return result

    async def restart_session(self) -> List[Dict[str, object]]:
        logger.info("session.restart requested")
        return await self.engine.restart()

    def close(self) -> None:
        self.engine.sessions.close()


grading_service = AssignmentGradingService()

__all__ = ["grading_service", "AssignmentGradingService"]
