from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.features.assignments.models import AppSetting, AssignmentRecord
from app.features.assignments.schemas import AssignmentSchema

logger = logging.getLogger(__name__)

COURSE_START_KEY = "course_start_date"


class AssignmentsRepository:
    """Assignment content and course-wide settings."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 settings: Optional[Settings] = None) -> None:
        if session_factory is None:
            from app.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    # -- sync helpers (run on worker threads) --------------------------------
    def _get_assignment(self, assignment_id: str) -> Optional[AssignmentSchema]:
        with self._session_factory() as db:
            row = db.get(AssignmentRecord, assignment_id)
            if row is None:
                return None
            return AssignmentSchema(
                id=row.id,
                day_index=row.day_index,
                type=row.kind,
                title=row.title,
                description=row.description or "",
                max_score=row.max_score,
                questions=row.questions or [],
                is_locked=bool(row.is_locked),
            )

    def _save_assignment(self, assignment: AssignmentSchema) -> None:
        payload = assignment.model_dump(by_alias=True)
        with self._session_factory() as db:
            row = db.get(AssignmentRecord, assignment.id)
            if row is None:
                row = AssignmentRecord(id=assignment.id)
                db.add(row)
            row.day_index = assignment.day_index
            row.kind = assignment.kind
            row.title = assignment.title
            row.description = assignment.description
            row.max_score = assignment.max_score
            row.questions = payload["questions"]
            row.is_locked = assignment.is_locked
            db.commit()

    def _get_setting(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            return db.execute(select(AppSetting.value).where(AppSetting.key == key)).scalar_one_or_none()

    def _set_setting(self, key: str, value: str) -> None:
        with self._session_factory() as db:
            db.merge(AppSetting(key=key, value=value))
            db.commit()

    # -- async surface ---------------------------------------------------------
    async def get_assignment_content(self, assignment_id: str) -> Optional[AssignmentSchema]:
        return await asyncio.to_thread(self._get_assignment, assignment_id)

    async def save_assignment(self, assignment: AssignmentSchema) -> None:
        await asyncio.to_thread(self._save_assignment, assignment)

    async def get_course_start_date(self) -> Optional[date]:
        """Stored course start, falling back to ``COURSE_START_DATE``."""
        raw = await asyncio.to_thread(self._get_setting, COURSE_START_KEY)
        if raw:
            try:
                return date.fromisoformat(raw.strip()[:10])
            except ValueError:
                logger.warning("Invalid %s setting: %r", COURSE_START_KEY, raw)
        return self._settings.course_start_date

    async def set_course_start_date(self, value: date) -> None:
        await asyncio.to_thread(self._set_setting, COURSE_START_KEY, value.isoformat())


__all__ = ["AssignmentsRepository", "COURSE_START_KEY"]
