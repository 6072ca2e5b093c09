"""Instructor-facing analytics over finalized attempts of one exam."""

from __future__ import annotations

import logging
import uuid
from collections import Counter, defaultdict
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from exam_engine.db.models import ExamAttempt
from exam_engine.schemas.analytics import (
    DailyCount,
    ExamAnalyticsRead,
    OverallStats,
    QuestionAnalytics,
    ScoreBucket,
)
from exam_engine.schemas.exam import ExamRecord, QuestionRecord, QuestionType
from exam_engine.services.attempt_store import AttemptStore, as_utc
from exam_engine.services.errors import ExamNotFound
from exam_engine.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)

BUCKET_COUNT = 10
FLAG_MIN_ANSWERS = 5
TOO_EASY_RATE = 0.95
TOO_HARD_RATE = 0.20


def _overall(attempts: list[ExamAttempt]) -> OverallStats:
    if not attempts:
        return OverallStats()
    scores = [a.score or 0.0 for a in attempts]
    passed = sum(1 for a in attempts if a.passed)
    total_time = sum(a.time_spent_seconds or 0 for a in attempts)
    return OverallStats(
        total_attempts=len(attempts),
        unique_students=len({a.user_id for a in attempts}),
        passed_count=passed,
        failed_count=len(attempts) - passed,
        pass_rate=round(passed / len(attempts) * 100, 2),
        average_score=round(sum(scores) / len(scores), 2),
        highest_score=max(scores),
        lowest_score=min(scores),
        average_time_minutes=round(total_time / len(attempts) / 60, 1),
    )


def _score_distribution(attempts: list[ExamAttempt]) -> list[ScoreBucket]:
    counts = [0] * BUCKET_COUNT
    width = 100 // BUCKET_COUNT
    for a in attempts:
        # 100% lands in the top bucket
        counts[min(BUCKET_COUNT - 1, int((a.score or 0.0) // width))] += 1
    return [
        ScoreBucket(range=f"{i * width}-{(i + 1) * width}%", count=c)
        for i, c in enumerate(counts)
    ]


def _flag(answered: int, correct: int) -> str | None:
    if answered <= FLAG_MIN_ANSWERS:
        return None
    rate = correct / answered
    if rate > TOO_EASY_RATE:
        return "TOO_EASY"
    if rate < TOO_HARD_RATE:
        return "TOO_HARD"
    return None


def _question_stats(
    question: QuestionRecord, answers: list[tuple[str | None, bool]]
) -> QuestionAnalytics:
    # Blank rows are stored for unanswered questions; they do not count as answered
    given = [(text.strip(), ok) for text, ok in answers if text and text.strip()]
    answered = len(given)
    correct = sum(1 for _, ok in given if ok)

    distribution: dict[str, int] = {}
    if question.question_type == QuestionType.MULTIPLE_CHOICE.value:
        picked = Counter(text for text, _ in given)
        distribution = {key: picked.get(key, 0) for key in question.option_keys}

    return QuestionAnalytics(
        question_id=question.id,
        prompt=question.prompt,
        question_type=question.question_type,
        difficulty=question.difficulty,
        total_answered=answered,
        correct_count=correct,
        incorrect_count=answered - correct,
        correct_rate=round(correct / answered * 100, 2) if answered else 0.0,
        option_distribution=distribution,
        flag=_flag(answered, correct),
    )


def _attempts_by_day(attempts: list[ExamAttempt]) -> list[DailyCount]:
    days = Counter(
        as_utc(a.submitted_at).date().isoformat() for a in attempts if a.submitted_at
    )
    return [DailyCount(date=d, count=c) for d, c in sorted(days.items())]


class ExamAnalytics:
    def __init__(self, db: Session) -> None:
        self._bank = QuestionBank(db)
        self._store = AttemptStore(db)

    def build(self, exam_id: uuid.UUID, now: datetime | None = None) -> ExamAnalyticsRead:
        exam: ExamRecord | None = self._bank.get(exam_id)
        if exam is None:
            raise ExamNotFound(exam_id)

        attempts = self._store.finalized_for_exam(exam_id)
        per_question: dict[uuid.UUID, list[tuple[str | None, bool]]] = defaultdict(list)
        for attempt in attempts:
            for row in attempt.answers:
                per_question[row.question_id].append((row.answer, row.is_correct))

        logger.debug("Analytics for exam %s over %d attempt(s)", exam_id, len(attempts))
        return ExamAnalyticsRead(
            exam_id=exam.id,
            exam_title=exam.title,
            passing_score=exam.passing_score,
            max_attempts=exam.max_attempts,
            time_limit_seconds=exam.time_limit_seconds,
            question_count=len(exam.questions),
            overall=_overall(attempts),
            score_distribution=_score_distribution(attempts),
            questions=[_question_stats(q, per_question[q.id]) for q in exam.questions],
            attempts_by_day=_attempts_by_day(attempts),
            generated_at=now or datetime.now(timezone.utc),
        )
