"""Exam-scoped routes: overview, start/resume an attempt, personal stats, analytics."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from exam_engine.api.deps import (
    CurrentUser,
    get_attempt_engine,
    get_current_user,
    get_now,
    require_admin,
)
from exam_engine.db.session import get_db
from exam_engine.schemas.analytics import ExamAnalyticsRead
from exam_engine.schemas.attempt import AttemptStartRead, ExamDetailRead, UserExamStats
from exam_engine.services.analytics import ExamAnalytics
from exam_engine.services.attempt_engine import AttemptEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/{exam_id}/attempts",
    response_model=AttemptStartRead,
    status_code=status.HTTP_201_CREATED,
)
def start_attempt(
    exam_id: uuid.UUID,
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
    now: datetime = Depends(get_now),
):
    """Start a timed attempt, or resume the one already in progress.

    Returns 201 for a fresh attempt and 200 when resuming; the question order
    is the same on every resume.
    """
    started = engine.start_attempt(current_user.id, exam_id, now)
    if started.resuming:
        response.status_code = status.HTTP_200_OK
    return started


@router.get("/{exam_id}", response_model=ExamDetailRead)
def get_exam(
    exam_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
    now: datetime = Depends(get_now),
):
    """Exam overview (time limit, passing score, question count) plus the
    caller's stats.  Does not start an attempt or reveal any question.
    """
    return engine.get_exam_detail(current_user.id, exam_id, now)


@router.get("/{exam_id}/stats", response_model=UserExamStats)
def get_exam_stats(
    exam_id: uuid.UUID,
    current_user: CurrentUser = Depends(get_current_user),
    engine: AttemptEngine = Depends(get_attempt_engine),
    now: datetime = Depends(get_now),
):
    return engine.get_user_stats(current_user.id, exam_id, now)


@router.get("/{exam_id}/analytics", response_model=ExamAnalyticsRead)
def get_exam_analytics(
    exam_id: uuid.UUID,
    _admin: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Aggregate statistics over every finalized attempt (admin only)."""
    return ExamAnalytics(db).build(exam_id, now)
