from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.features.submissions.models import AssignmentSubmission, SubmissionStatus
from app.features.submissions.schemas import SubmissionRecordSchema

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SubmissionsRepository:
    """Per-user assignment submission records.

    Writes are conditional on the status the caller last read, so a record
    that became ``submitted`` in the meantime is never overwritten.
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        if session_factory is None:
            from app.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    @staticmethod
    def _to_schema(row: AssignmentSubmission) -> SubmissionRecordSchema:
        return SubmissionRecordSchema(
            user_id=row.user_id,
            assignment_id=row.assignment_id,
            saved_answers=row.saved_answers or {},
            validation_status=row.validation_status or {},
            status=SubmissionStatus(row.status),
            score=row.score,
            raw_score=row.raw_score,
            max_score=row.max_score,
            is_late=bool(row.is_late),
            results=row.results,
            submitted_at=_as_utc(row.submitted_at),
            updated_at=_as_utc(row.updated_at),
        )

    @staticmethod
    def _values(record: SubmissionRecordSchema) -> Dict[str, Any]:
        dumped = record.model_dump(mode="json")
        return {
            "saved_answers": dumped["saved_answers"],
            "validation_status": dumped["validation_status"],
            "status": record.status.value,
            "score": record.score,
            "raw_score": record.raw_score,
            "max_score": record.max_score,
            "is_late": record.is_late,
            "results": dumped["results"],
            "submitted_at": record.submitted_at,
            "updated_at": record.updated_at or datetime.now(timezone.utc),
        }

    def _get(self, user_id: str, assignment_id: str) -> Optional[SubmissionRecordSchema]:
        with self._session_factory() as db:
            row = db.execute(
                select(AssignmentSubmission).where(
                    AssignmentSubmission.user_id == user_id,
                    AssignmentSubmission.assignment_id == assignment_id,
                )
            ).scalar_one_or_none()
            return self._to_schema(row) if row is not None else None

    def _upsert(self, record: SubmissionRecordSchema, expected_prior_status: SubmissionStatus) -> bool:
        if record.status == SubmissionStatus.not_started:
            raise ValueError("cannot_store_not_started")
        values = self._values(record)
        with self._session_factory() as db:
            if expected_prior_status == SubmissionStatus.not_started:
                db.add(AssignmentSubmission(user_id=record.user_id, assignment_id=record.assignment_id, **values))
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    logger.info("submission.insert_conflict user=%s assignment=%s", record.user_id, record.assignment_id)
                    return False
                return True

            result = db.execute(
                update(AssignmentSubmission)
                .where(
                    AssignmentSubmission.user_id == record.user_id,
                    AssignmentSubmission.assignment_id == record.assignment_id,
                    AssignmentSubmission.status == expected_prior_status.value,
                )
                .values(**values)
            )
            db.commit()
            if result.rowcount != 1:
                logger.info(
                    "submission.update_conflict user=%s assignment=%s expected=%s",
                    record.user_id, record.assignment_id, expected_prior_status.value,
                )
                return False
            return True

    async def get_submission(self, user_id: str, assignment_id: str) -> Optional[SubmissionRecordSchema]:
        return await asyncio.to_thread(self._get, user_id, assignment_id)

    async def upsert_submission(self, record: SubmissionRecordSchema,
                                expected_prior_status: SubmissionStatus) -> bool:
        """Store ``record`` only if the current status still equals ``expected_prior_status``.

        Returns ``False`` when another writer got there first.
        """
        return await asyncio.to_thread(self._upsert, record, expected_prior_status)


__all__ = ["SubmissionsRepository"]
