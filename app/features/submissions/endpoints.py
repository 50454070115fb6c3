# app/features/submissions/endpoints.py
from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from app.common.deps import CurrentUser, get_current_user, get_grading_service
from app.features.grading.errors import EngineBootstrapError, PersistenceConflict, SubmissionLockedError
from app.features.grading.schemas import PreCheckResultSchema, SnippetRunSchema
from app.features.submissions.schemas import (
    AssignmentWorkspaceSchema,
    DraftRequest,
    PreCheckRequest,
    RunRequest,
    SubmissionRecordSchema,
    SubmitRequest,
    SubmitResponseSchema,
)
from app.features.submissions.service import AssignmentGradingService

logger = logging.getLogger("submissions")

router = APIRouter(prefix="/assignments", tags=["assignments"])

_NOT_FOUND = {"assignment_not_found", "question_not_found"}


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, PersistenceConflict):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, SubmissionLockedError):
        # assignment_locked is the admin gate; submission_locked is a state conflict.
        raise HTTPException(status_code=403 if str(exc) == "assignment_locked" else 409, detail=str(exc))
    if isinstance(exc, EngineBootstrapError):
        logger.error("engine.bootstrap_failed extension=%s: %s", exc.extension, exc)
        raise HTTPException(status_code=503, detail="execution_engine_unavailable")
    if isinstance(exc, ValueError):
        detail = str(exc)
        raise HTTPException(status_code=404 if detail in _NOT_FOUND else 400, detail=detail)
    raise exc


@router.get(
    "/{assignment_id}",
    response_model=AssignmentWorkspaceSchema,
    summary="Load an assignment with the caller's saved answers and status",
)
async def get_assignment(
    assignment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    try:
        return await service.load_workspace(current_user.id, assignment_id)
    except ValueError as exc:
        _raise_http(exc)


@router.put(
    "/{assignment_id}/draft",
    response_model=SubmissionRecordSchema,
    summary="Save answers without grading",
)
async def save_draft(
    assignment_id: str,
    payload: DraftRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    try:
        return await service.save_draft(current_user.id, assignment_id, payload.answers)
    except (ValueError, PersistenceConflict, SubmissionLockedError) as exc:
        _raise_http(exc)


@router.post(
    "/{assignment_id}/questions/{question_id}/pre-check",
    response_model=PreCheckResultSchema,
    summary="Run the visible tests of one question",
    description=(
        "Runs only the visible test cases, records a validation snapshot and auto-saves the answer. "
        "Never changes the score."
    ),
)
async def pre_check(
    assignment_id: str,
    question_id: str,
    payload: PreCheckRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    try:
        return await service.pre_check(current_user.id, assignment_id, question_id, payload.answers)
    except (ValueError, PersistenceConflict, SubmissionLockedError, EngineBootstrapError) as exc:
        _raise_http(exc)


@router.post(
    "/{assignment_id}/submit",
    response_model=SubmitResponseSchema,
    summary="Grade every question and lock the submission",
)
async def submit(
    assignment_id: str,
    payload: SubmitRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    try:
        return await service.submit(current_user.id, assignment_id, payload.answers)
    except (ValueError, PersistenceConflict, SubmissionLockedError, EngineBootstrapError) as exc:
        _raise_http(exc)


@router.post(
    "/{assignment_id}/run",
    response_model=SnippetRunSchema,
    summary="Run a code cell without grading",
)
async def run_cell(
    assignment_id: str,
    payload: RunRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    try:
        return await service.run_snippet(current_user.id, assignment_id, payload.code, payload.inputs)
    except (ValueError, SubmissionLockedError, EngineBootstrapError) as exc:
        _raise_http(exc)
