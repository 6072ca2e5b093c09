"""Read-side exam analytics schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class OverallStats(BaseModel):
    total_attempts: int = 0
    unique_students: int = 0
    passed_count: int = 0
    failed_count: int = 0
    pass_rate: float = 0.0
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    average_time_minutes: float = 0.0


class ScoreBucket(BaseModel):
    range: str  # e.g. "40-50%"
    count: int


class QuestionAnalytics(BaseModel):
    question_id: uuid.UUID
    prompt: str
    question_type: str
    difficulty: str
    total_answered: int
    correct_count: int
    incorrect_count: int
    correct_rate: float
    option_distribution: dict[str, int] = {}
    flag: str | None = None  # TOO_EASY / TOO_HARD


class DailyCount(BaseModel):
    date: str
    count: int


class ExamAnalyticsRead(BaseModel):
    exam_id: uuid.UUID
    exam_title: str
    passing_score: float
    max_attempts: int
    time_limit_seconds: int
    question_count: int
    overall: OverallStats
    score_distribution: list[ScoreBucket]
    questions: list[QuestionAnalytics]
    attempts_by_day: list[DailyCount]
    generated_at: datetime
