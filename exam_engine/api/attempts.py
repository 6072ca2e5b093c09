"""Attempt submission and retrieval routes."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends

from exam_engine.api.deps import CurrentUser, get_attempt_engine, get_current_user, get_now
from exam_engine.schemas.attempt import (
    AttemptDetailRead,
    AttemptResultRead,
    AttemptSubmit,
    AttemptSummary,
)
from exam_engine.services.attempt_engine import AttemptEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{attempt_id}/submit", response_model=AttemptResultRead)
def submit_attempt(
    attempt_id: uuid.UUID,
    body: AttemptSubmit,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
    now: datetime = Depends(get_now),
):
    """Submit all answers and receive the graded result.

    Safe to retry: submitting an attempt that is already finalized returns
    the stored result unchanged.
    """
    return engine.submit_attempt(
        attempt_id,
        body.answers,
        user_id=current_user.id,
        client_time_spent_seconds=body.client_time_spent_seconds,
        auto_submit=body.auto_submit,
        now=now,
    )


@router.get("/", response_model=list[AttemptSummary])
def list_my_attempts(
    exam_id: uuid.UUID | None = None,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
):
    """List the caller's attempts, newest first."""
    return engine.list_attempts(current_user.id, exam_id)


@router.get("/{attempt_id}", response_model=AttemptDetailRead)
def get_attempt(
    attempt_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
):
    return engine.get_attempt(attempt_id, current_user.id)
