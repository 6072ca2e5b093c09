"""Deterministic per-attempt shuffling.

The shuffled order is never stored: it is recomputed from a seed derived from
the attempt id, so every read of the same attempt sees the same order.
"""

import random
import uuid
from typing import Sequence, TypeVar

from exam_engine.schemas.exam import (
    AttemptQuestionRead,
    ExamRecord,
    OptionRead,
    option_key,
)

T = TypeVar("T")


def shuffle(seed: str, items: Sequence[T]) -> list[T]:
    """Return a copy of *items* shuffled reproducibly for *seed*."""
    shuffled = list(items)
    random.Random(seed).shuffle(shuffled)
    return shuffled


def present_questions(exam: ExamRecord, attempt_id: uuid.UUID) -> list[AttemptQuestionRead]:
    """Build the de-keyed question list for an attempt.

    Options keep their original letter key when shuffled, so a submitted
    letter always refers to the stored correct answer.
    """
    questions = list(exam.questions)
    if exam.shuffle_questions:
        questions = shuffle(str(attempt_id), questions)

    served: list[AttemptQuestionRead] = []
    for number, q in enumerate(questions, 1):
        options = None
        if q.options:
            options = [OptionRead(key=option_key(i), text=text) for i, text in enumerate(q.options)]
            if exam.shuffle_options:
                options = shuffle(f"{attempt_id}:{q.id}", options)
        served.append(
            AttemptQuestionRead(
                id=q.id,
                number=number,
                prompt=q.prompt,
                question_type=q.question_type,
                options=options,
                points=q.points,
                difficulty=q.difficulty,
            )
        )
    return served
