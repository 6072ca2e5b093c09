"""Scoring engine for exam submissions.

Pure functions, no I/O.  Matching rules per question type:

  - multiple_choice: exact, case-sensitive letter match (A/B/C/…)
  - true_false:      exact match against "True" / "False"
  - short_answer:    trimmed, case-insensitive match against any of the
                     ``|``-delimited acceptable answers

Anything unrecognised or malformed scores as incorrect; a single bad question
never aborts scoring of the rest.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping

from pydantic import BaseModel

from exam_engine.schemas.exam import QuestionRecord, QuestionType

logger = logging.getLogger(__name__)

SHORT_ANSWER_SEPARATOR = "|"
TRUE_FALSE_VALUES = ("True", "False")


class QuestionOutcome(BaseModel):
    question_id: uuid.UUID
    submitted: str | None = None
    is_correct: bool
    points: int
    points_earned: int


class ScoreResult(BaseModel):
    earned_points: int
    total_points: int
    score: float
    passed: bool
    outcomes: list[QuestionOutcome]

    model_config = {"frozen": True}


# ── Per-type matchers ─────────────────────────────────────────────────────────


def _match_multiple_choice(question: QuestionRecord, submitted: str) -> bool:
    keys = question.option_keys
    if len(keys) < 2 or question.correct_answer not in keys:
        logger.warning("Malformed multiple choice question %s — scored incorrect", question.id)
        return False
    return submitted == question.correct_answer


def _match_true_false(question: QuestionRecord, submitted: str) -> bool:
    if question.correct_answer not in TRUE_FALSE_VALUES:
        logger.warning("Malformed true/false question %s — scored incorrect", question.id)
        return False
    return submitted == question.correct_answer


def _match_short_answer(question: QuestionRecord, submitted: str) -> bool:
    acceptable = {
        a.strip().lower()
        for a in (question.correct_answer or "").split(SHORT_ANSWER_SEPARATOR)
        if a.strip()
    }
    return submitted.lower() in acceptable


_MATCHERS = {
    QuestionType.MULTIPLE_CHOICE.value: _match_multiple_choice,
    QuestionType.TRUE_FALSE.value: _match_true_false,
    QuestionType.SHORT_ANSWER.value: _match_short_answer,
}


def grade_answer(question: QuestionRecord, submitted: str | None) -> bool:
    """Return True if *submitted* is a correct answer to *question*."""
    if submitted is None:
        return False
    answer = submitted.strip()
    if not answer or question.correct_answer is None:
        return False

    matcher = _MATCHERS.get(question.question_type)
    if matcher is None:
        logger.warning(
            "Unknown question type %r on question %s — scored incorrect",
            question.question_type, question.id,
        )
        return False
    return matcher(question, answer)


# ── Whole submission ──────────────────────────────────────────────────────────


def is_passing(earned_points: int, total_points: int, passing_score: float) -> bool:
    """``score >= passing_score`` evaluated without float rounding."""
    if total_points <= 0:
        return 0 >= passing_score
    return earned_points * 100 >= passing_score * total_points


def score_submission(
    questions: Iterable[QuestionRecord],
    answers: Mapping[str, str | None],
    passing_score: float,
) -> ScoreResult:
    """Score *answers* (keyed by question id string) against *questions*.

    Answers for question ids that are not part of the exam are ignored;
    missing answers count as incorrect.
    """
    outcomes: list[QuestionOutcome] = []
    earned = 0
    total = 0

    for question in questions:
        submitted = answers.get(str(question.id))
        is_correct = grade_answer(question, submitted)
        points = max(question.points, 0)
        points_earned = points if is_correct else 0
        total += points
        earned += points_earned
        outcomes.append(
            QuestionOutcome(
                question_id=question.id,
                submitted=submitted,
                is_correct=is_correct,
                points=points,
                points_earned=points_earned,
            )
        )

    score = round(earned / total * 100, 2) if total else 0.0
    return ScoreResult(
        earned_points=earned,
        total_points=total,
        score=score,
        passed=is_passing(earned, total, passing_score),
        outcomes=outcomes,
    )
