from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.common.deps import CurrentUser, get_current_user, get_grading_service
from app.features.grading.errors import EngineBootstrapError
from app.features.submissions.service import AssignmentGradingService

logger = logging.getLogger("sessions")

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/restart", summary="Clear user state from the execution session")
async def restart_session(
    current_user: CurrentUser = Depends(get_current_user),
    service: AssignmentGradingService = Depends(get_grading_service),
):
    logger.info("session.restart user=%s", current_user.id)
    try:
        sessions = await service.restart_session()
    except EngineBootstrapError as exc:
        logger.error("session.restart_failed: %s", exc)
        raise HTTPException(status_code=503, detail="execution_engine_unavailable")
    return {"status": "ok", "sessions": sessions}
