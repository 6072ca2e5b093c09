"""Attempt schemas."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from exam_engine.schemas.exam import AttemptQuestionRead


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"


class AttemptStartRead(BaseModel):
    """Returned by POST /api/exams/{exam_id}/attempts (fresh or resumed)."""

    attempt_id: uuid.UUID
    exam_id: uuid.UUID
    attempt_number: int
    max_attempts: int
    started_at: datetime
    expires_at: datetime
    time_limit_seconds: int
    remaining_time_seconds: int
    resuming: bool = False
    questions: list[AttemptQuestionRead]


class AttemptSubmit(BaseModel):
    """POST /api/attempts/{attempt_id}/submit — all answers at once."""

    answers: dict[str, str | None] = {}  # {question_id: answer_text}
    # Reported by the client's countdown; stored for audit only
    client_time_spent_seconds: int | None = Field(default=None, ge=0)
    auto_submit: bool = False


class AnswerBreakdown(BaseModel):
    """Per-question review line, only shown when the exam allows it."""

    question_id: uuid.UUID
    prompt: str
    submitted_answer: str | None = None
    correct_answer: str | None = None
    is_correct: bool
    points: int
    points_earned: int
    explanation: str | None = None


class AttemptResultRead(BaseModel):
    """Finalized attempt result."""

    attempt_id: uuid.UUID
    exam_id: uuid.UUID
    attempt_number: int
    status: AttemptStatus
    score: float
    earned_points: int
    total_points: int
    passed: bool
    passing_score: float
    time_spent_seconds: int
    submitted_at: datetime
    certificate_id: uuid.UUID | None = None
    breakdown: list[AnswerBreakdown] | None = None


class AttemptSummary(BaseModel):
    """Compact attempt row used in listings and stats."""

    id: uuid.UUID
    exam_id: uuid.UUID
    attempt_number: int
    status: AttemptStatus
    started_at: datetime
    submitted_at: datetime | None = None
    time_spent_seconds: int | None = None
    score: float | None = None
    passed: bool | None = None
    certificate_id: uuid.UUID | None = None

    model_config = {"from_attributes": True}


class UserExamStats(BaseModel):
    """GET /api/exams/{exam_id}/stats — the caller's standing on an exam."""

    exam_id: uuid.UUID
    attempts: int
    max_attempts: int
    best_score: float | None = None
    has_passed: bool
    can_retake: bool
    has_active_attempt: bool
    last_attempt: AttemptSummary | None = None


class AttemptDetailRead(AttemptSummary):
    """One attempt; ``result`` is present once it has been finalized."""

    result: AttemptResultRead | None = None


class ExamDetailRead(BaseModel):
    """GET /api/exams/{exam_id} — exam overview before starting, never the questions."""

    id: uuid.UUID
    course_id: str | None = None
    title: str
    description: str | None = None
    passing_score: float
    time_limit_seconds: int
    max_attempts: int
    question_count: int
    total_points: int
    shuffle_questions: bool
    show_results_after_submit: bool
    available_from: datetime | None = None
    available_until: datetime | None = None
    user_stats: UserExamStats
