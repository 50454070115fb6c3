"""Submission lifecycle: not_started -> in_progress -> submitted.

``submitted`` is terminal. Every transition is persisted with a single
conditional write keyed on the status that was read before it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Mapping, Optional

from app.features.grading.errors import PersistenceConflict, SubmissionLockedError
from app.features.grading.schemas import QuestionResultSchema
from app.features.submissions.models import SubmissionStatus
from app.features.submissions.repository import SubmissionsRepository
from app.features.submissions.schemas import SubmissionRecordSchema, ValidationSnapshotSchema

logger = logging.getLogger(__name__)

SAVE_DRAFT = "save_draft"
PRE_CHECK = "pre_check"
SUBMIT = "submit"

_TRANSITIONS: Dict[tuple, SubmissionStatus] = {
    (SubmissionStatus.not_started, SAVE_DRAFT): SubmissionStatus.in_progress,
    (SubmissionStatus.in_progress, SAVE_DRAFT): SubmissionStatus.in_progress,
    (SubmissionStatus.not_started, PRE_CHECK): SubmissionStatus.in_progress,
    (SubmissionStatus.in_progress, PRE_CHECK): SubmissionStatus.in_progress,
    (SubmissionStatus.not_started, SUBMIT): SubmissionStatus.submitted,
    (SubmissionStatus.in_progress, SUBMIT): SubmissionStatus.submitted,
}


def status_of(record: Optional[SubmissionRecordSchema]) -> SubmissionStatus:
    return record.status if record is not None else SubmissionStatus.not_started


def next_status(current: SubmissionStatus, event: str) -> SubmissionStatus:
    target = _TRANSITIONS.get((current, event))
    if target is not None:
        return target
    if current == SubmissionStatus.submitted:
        if event == SUBMIT:
            raise PersistenceConflict(current_status=current.value)
        raise SubmissionLockedError()
    raise ValueError(f"invalid_transition:{current.value}:{event}")


class SubmissionStateMachine:
    def __init__(self, repository: SubmissionsRepository) -> None:
        self.repository = repository

    async def current(self, user_id: str, assignment_id: str) -> Optional[SubmissionRecordSchema]:
        return await self.repository.get_submission(user_id, assignment_id)

    async def _write(self, record: SubmissionRecordSchema, prior: SubmissionStatus, event: str) -> SubmissionRecordSchema:
        stored = await self.repository.upsert_submission(record, prior)
        if stored:
            logger.info("submission.%s user=%s assignment=%s status=%s",
                        event, record.user_id, record.assignment_id, record.status.value)
            return record
        latest = await self.repository.get_submission(record.user_id, record.assignment_id)
        latest_status = status_of(latest)
        if latest_status == SubmissionStatus.submitted:
            if event == SUBMIT:
                raise PersistenceConflict(current_status=latest_status.value)
            raise SubmissionLockedError()
        # Lost a first-insert race against a draft save; retry once against the row that won.
        merged = record
        if event != SUBMIT and latest is not None:
            merged = record.model_copy(update={
                "saved_answers": {**latest.saved_answers, **record.saved_answers},
                "validation_status": {**latest.validation_status, **record.validation_status},
            })
        if await self.repository.upsert_submission(merged, latest_status):
            return merged
        raise PersistenceConflict(current_status=latest_status.value)

    async def save_draft(self, user_id: str, assignment_id: str, answers: Mapping[str, str],
                         *, now: datetime) -> SubmissionRecordSchema:
        record = await self.current(user_id, assignment_id)
        prior = status_of(record)
        target = next_status(prior, SAVE_DRAFT)
        base = record or SubmissionRecordSchema(user_id=user_id, assignment_id=assignment_id)
        updated = base.model_copy(update={
            "saved_answers": {**base.saved_answers, **answers},
            "status": target,
            "updated_at": now,
        })
        return await self._write(updated, prior, SAVE_DRAFT)

    async def record_pre_check(self, user_id: str, assignment_id: str, answers: Mapping[str, str],
                               question_id: str, snapshot: ValidationSnapshotSchema,
                               *, now: datetime) -> SubmissionRecordSchema:
        record = await self.current(user_id, assignment_id)
        prior = status_of(record)
        target = next_status(prior, PRE_CHECK)
        base = record or SubmissionRecordSchema(user_id=user_id, assignment_id=assignment_id)
        updated = base.model_copy(update={
            "saved_answers": {**base.saved_answers, **answers},
            "validation_status": {**base.validation_status, question_id: snapshot},
            "status": target,
            "updated_at": now,
        })
        return await self._write(updated, prior, PRE_CHECK)

    async def submit(
        self,
        record: Optional[SubmissionRecordSchema],
        *,
        user_id: str,
        assignment_id: str,
        answers: Mapping[str, str],
        results: Dict[str, QuestionResultSchema],
        raw_score: int,
        final_score: int,
        max_score: int,
        is_late: bool,
        now: datetime,
    ) -> SubmissionRecordSchema:
        """Persist the graded submission; ``record`` is the state read before grading began."""
        prior = status_of(record)
        target = next_status(prior, SUBMIT)
        base = record or SubmissionRecordSchema(user_id=user_id, assignment_id=assignment_id)
        updated = base.model_copy(update={
            "saved_answers": dict(answers),
            "status": target,
            "score": final_score,
            "raw_score": raw_score,
            "max_score": max_score,
            "is_late": is_late,
            "results": dict(results),
            "submitted_at": now,
            "updated_at": now,
        })
        return await self._write(updated, prior, SUBMIT)


__all__ = [
    "SubmissionStateMachine",
    "status_of",
    "next_status",
    "SAVE_DRAFT",
    "PRE_CHECK",
    "SUBMIT",
]
