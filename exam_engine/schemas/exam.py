"""Exam and question schemas.

``ExamRecord`` / ``QuestionRecord`` are the read-only snapshot handed out by
the question bank.  ``ExamCreate`` / ``QuestionCreate`` are used when seeding
exams and enforce the authoring invariants.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def option_key(index: int) -> str:
    """Letter key of the option at *index* (0 → 'A')."""
    return chr(65 + index)


# ── Question bank snapshot ────────────────────────────────────────────────────


class QuestionRecord(BaseModel):
    """One question as stored in the bank (correct answer included)."""

    id: uuid.UUID
    position: int = 0
    prompt: str
    question_type: str  # kept as str: unknown types must not break loading
    options: list[str] | None = None
    correct_answer: str | None = None
    explanation: str | None = None
    points: int = 1
    difficulty: str = Difficulty.MEDIUM.value

    model_config = {"frozen": True}

    @property
    def option_keys(self) -> list[str]:
        return [option_key(i) for i in range(len(self.options or []))]


class ExamRecord(BaseModel):
    """Exam policy plus its ordered questions."""

    id: uuid.UUID
    course_id: str | None = None
    title: str
    description: str | None = None
    passing_score: float
    time_limit_seconds: int
    max_attempts: int
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results_after_submit: bool = True
    is_published: bool = False
    is_active: bool = True
    available_from: datetime | None = None
    available_until: datetime | None = None
    questions: list[QuestionRecord] = []

    model_config = {"frozen": True}


# ── Authoring (seed) ──────────────────────────────────────────────────────────


class QuestionCreate(BaseModel):
    prompt: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: list[str] | None = None
    correct_answer: str
    explanation: str | None = None
    points: int = Field(default=1, gt=0)
    difficulty: Difficulty = Difficulty.MEDIUM

    @model_validator(mode="after")
    def _check_answer_shape(self) -> "QuestionCreate":
        if self.question_type == QuestionType.MULTIPLE_CHOICE:
            opts = self.options or []
            if len(opts) < 2:
                raise ValueError("multiple choice questions need at least 2 options")
            if len(set(opts)) != len(opts):
                raise ValueError("multiple choice options must be unique")
            if len(opts) > 26:
                raise ValueError("multiple choice questions support at most 26 options")
            keys = [option_key(i) for i in range(len(opts))]
            if self.correct_answer not in keys:
                raise ValueError(
                    f"correct_answer must be one of {', '.join(keys)}"
                )
        elif self.question_type == QuestionType.TRUE_FALSE:
            if self.options:
                raise ValueError("true/false questions take no options")
            if self.correct_answer not in ("True", "False"):
                raise ValueError("correct_answer must be 'True' or 'False'")
        else:
            if self.options:
                raise ValueError("short answer questions take no options")
            if not any(a.strip() for a in self.correct_answer.split("|")):
                raise ValueError("short answer needs at least one acceptable answer")
        return self


class ExamCreate(BaseModel):
    title: str
    course_id: str | None = None
    description: str | None = None
    passing_score: float = Field(default=60.0, ge=0, le=100)
    time_limit_seconds: int = Field(default=3600, gt=0)
    max_attempts: int = Field(default=3, gt=0)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results_after_submit: bool = True
    is_published: bool = True
    available_from: datetime | None = None
    available_until: datetime | None = None
    questions: list[QuestionCreate] = []


# ── Served to students (de‑keyed) ─────────────────────────────────────────────


class OptionRead(BaseModel):
    """A multiple-choice option; ``key`` is the letter to submit."""

    key: str
    text: str


class AttemptQuestionRead(BaseModel):
    """Question as shown during an attempt — never carries the answer."""

    id: uuid.UUID
    number: int
    prompt: str
    question_type: str
    options: list[OptionRead] | None = None
    points: int
    difficulty: str
