"""Read-only question bank accessor.

Turns ``exams`` / ``exam_questions`` rows into frozen ``ExamRecord``
snapshots so the scoring and state-machine code never touches (or mutates)
ORM objects of the bank.
"""

from __future__ import annotations

import json
import logging
import uuid

from sqlalchemy.orm import Session, selectinload

from exam_engine.db.models import Exam, ExamQuestion
from exam_engine.schemas.exam import ExamRecord, QuestionRecord

logger = logging.getLogger(__name__)


def _parse_options(question: ExamQuestion) -> list[str] | None:
    if not question.options:
        return None
    try:
        parsed = json.loads(question.options)
    except json.JSONDecodeError:
        logger.warning("Question %s has unparseable options — treating as none", question.id)
        return None
    if not isinstance(parsed, list):
        logger.warning("Question %s options are not a list — treating as none", question.id)
        return None
    return [str(opt) for opt in parsed]


def to_question_record(question: ExamQuestion) -> QuestionRecord:
    return QuestionRecord(
        id=question.id,
        position=question.position,
        prompt=question.prompt,
        question_type=question.question_type,
        options=_parse_options(question),
        correct_answer=question.correct_answer,
        explanation=question.explanation,
        points=question.points,
        difficulty=question.difficulty,
    )


class QuestionBank:
    """Loads exams with their ordered questions."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, exam_id: uuid.UUID) -> ExamRecord | None:
        exam = (
            self._db.query(Exam)
            .options(selectinload(Exam.questions))
            .filter(Exam.id == exam_id)
            .first()
        )
        if exam is None:
            return None

        questions = sorted(exam.questions, key=lambda q: q.position)
        return ExamRecord(
            id=exam.id,
            course_id=exam.course_id,
            title=exam.title,
            description=exam.description,
            passing_score=exam.passing_score,
            time_limit_seconds=exam.time_limit_seconds,
            max_attempts=exam.max_attempts,
            shuffle_questions=exam.shuffle_questions,
            shuffle_options=exam.shuffle_options,
            show_results_after_submit=exam.show_results_after_submit,
            is_published=exam.is_published,
            is_active=exam.is_active,
            available_from=exam.available_from,
            available_until=exam.available_until,
            questions=[to_question_record(q) for q in questions],
        )
