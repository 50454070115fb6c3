"""Shared FastAPI dependencies for identity and context."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from pydantic import BaseModel

logger = logging.getLogger("auth.deps")

USER_HEADER = "X-User-Id"


class CurrentUser(BaseModel):
    """Minimal user identity shared across endpoints."""
    id: str


async def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> CurrentUser:
    """Resolve the caller from the ``X-User-Id`` header set by the upstream auth proxy."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_user")
    request.state.user_id = user_id
    return CurrentUser(id=user_id)


def get_grading_service():
    from app.features.submissions.service import grading_service

    return grading_service


__all__ = ["CurrentUser", "get_current_user", "get_grading_service", "USER_HEADER"]
