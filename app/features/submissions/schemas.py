from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.features.assignments.schemas import AssignmentSchema
from app.features.grading.schemas import QuestionResultSchema
from app.features.submissions.models import SubmissionStatus


def _clean_answers(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("answers must be an object mapping question_id -> code")
    cleaned: Dict[str, str] = {}
    for key, code in value.items():
        if not isinstance(key, str) or not key:
            raise ValueError("question ids must be non-empty strings")
        cleaned[key] = "" if code is None else str(code)
    return cleaned


class ValidationSnapshotSchema(BaseModel):
    """Outcome of the latest pre-check for one question."""

    ratio: float
    passed: int
    total: int
    log: str = ""
    checked_at: datetime


class SubmissionRecordSchema(BaseModel):
    user_id: str
    assignment_id: str
    saved_answers: Dict[str, str] = Field(default_factory=dict)
    validation_status: Dict[str, ValidationSnapshotSchema] = Field(default_factory=dict)
    status: SubmissionStatus = SubmissionStatus.not_started
    score: Optional[int] = None
    raw_score: Optional[int] = None
    max_score: Optional[int] = None
    is_late: bool = False
    results: Optional[Dict[str, QuestionResultSchema]] = None
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("saved_answers", mode="before")
    @classmethod
    def _answers(cls, value: Any) -> Dict[str, str]:
        return _clean_answers(value)


class AnswersPayload(BaseModel):
    answers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("answers", mode="before")
    @classmethod
    def _answers(cls, value: Any) -> Dict[str, str]:
        return _clean_answers(value)


class DraftRequest(AnswersPayload):
    pass


class PreCheckRequest(AnswersPayload):
    pass


class SubmitRequest(AnswersPayload):
    pass


class RunRequest(BaseModel):
    code: str
    inputs: List[str] = Field(default_factory=list)


class SubmitResponseSchema(BaseModel):
    assignment_id: str
    status: SubmissionStatus
    raw_score: int
    final_score: int
    max_score: int
    is_late: bool
    due_at: Optional[datetime] = None
    submitted_at: datetime
    tests_passed: int
    tests_total: int
    questions: Dict[str, QuestionResultSchema] = Field(default_factory=dict)


class AssignmentWorkspaceSchema(BaseModel):
    """Everything the notebook view needs to render an assignment for one user."""

    assignment: AssignmentSchema
    answers: Dict[str, str] = Field(default_factory=dict)
    status: SubmissionStatus = SubmissionStatus.not_started
    validation_status: Dict[str, ValidationSnapshotSchema] = Field(default_factory=dict)
    due_at: Optional[datetime] = None
    is_late: bool = False
    score: Optional[int] = None
    raw_score: Optional[int] = None
    results: Optional[Dict[str, QuestionResultSchema]] = None


__all__ = [
    "ValidationSnapshotSchema",
    "SubmissionRecordSchema",
    "DraftRequest",
    "PreCheckRequest",
    "SubmitRequest",
    "RunRequest",
    "SubmitResponseSchema",
    "AssignmentWorkspaceSchema",
]
