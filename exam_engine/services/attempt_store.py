"""Durable attempt records.

The store owns every write to ``exam_attempts`` / ``exam_answers``.  The one
write that matters for correctness is :meth:`AttemptStore.finalize`: a single
conditional UPDATE guarded by ``status = 'in_progress'``.  Exactly one caller
can win it; everybody else gets :class:`AttemptNotInProgress` and reads the
winner's stored result instead.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from exam_engine.db.models import AttemptStatusEnum, ExamAnswer, ExamAttempt
from exam_engine.services.errors import AttemptNotInProgress
from exam_engine.services.scoring import ScoreResult

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (AttemptStatusEnum.SUBMITTED, AttemptStatusEnum.EXPIRED)


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StartConflict(Exception):
    """A concurrent start created the in-progress attempt first."""


class AttemptStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    # ── reads ─────────────────────────────────────────────────────────────

    def get(self, attempt_id: uuid.UUID) -> ExamAttempt | None:
        return (
            self._db.query(ExamAttempt)
            .options(selectinload(ExamAttempt.answers))
            .filter(ExamAttempt.id == attempt_id)
            .first()
        )

    def get_active(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> ExamAttempt | None:
        return (
            self._db.query(ExamAttempt)
            .filter(
                ExamAttempt.user_id == user_id,
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .first()
        )

    def list_for_user(
        self, user_id: uuid.UUID, exam_id: uuid.UUID | None = None
    ) -> list[ExamAttempt]:
        """All attempts of a user, newest first."""
        q = self._db.query(ExamAttempt).filter(ExamAttempt.user_id == user_id)
        if exam_id is not None:
            q = q.filter(ExamAttempt.exam_id == exam_id)
        return q.order_by(ExamAttempt.started_at.desc(), ExamAttempt.attempt_number.desc()).all()

    def finalized_for_user(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> list[ExamAttempt]:
        return (
            self._db.query(ExamAttempt)
            .filter(
                ExamAttempt.user_id == user_id,
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status.in_(TERMINAL_STATUSES),
            )
            .order_by(ExamAttempt.attempt_number)
            .all()
        )

    def finalized_for_exam(self, exam_id: uuid.UUID) -> list[ExamAttempt]:
        return (
            self._db.query(ExamAttempt)
            .options(selectinload(ExamAttempt.answers))
            .filter(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status.in_(TERMINAL_STATUSES),
            )
            .order_by(ExamAttempt.submitted_at.desc())
            .all()
        )

    def in_progress(self) -> list[ExamAttempt]:
        return (
            self._db.query(ExamAttempt)
            .filter(ExamAttempt.status == AttemptStatusEnum.IN_PROGRESS)
            .all()
        )

    def passed_without_certificate(self) -> list[ExamAttempt]:
        return (
            self._db.query(ExamAttempt)
            .filter(
                ExamAttempt.passed.is_(True),
                ExamAttempt.certificate_id.is_(None),
            )
            .all()
        )

    # ── writes ────────────────────────────────────────────────────────────

    def create(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        attempt_number: int,
        started_at: datetime,
    ) -> ExamAttempt:
        """Insert a fresh in-progress attempt.

        Raises :class:`StartConflict` when the unique indexes reject the row,
        i.e. another request already opened an attempt for this user + exam.
        """
        attempt = ExamAttempt(
            exam_id=exam_id,
            user_id=user_id,
            attempt_number=attempt_number,
            status=AttemptStatusEnum.IN_PROGRESS,
            started_at=started_at,
        )
        self._db.add(attempt)
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise StartConflict(str(exc.orig)) from exc
        self._db.refresh(attempt)
        return attempt

    def finalize(
        self,
        attempt_id: uuid.UUID,
        *,
        status: AttemptStatusEnum,
        submitted_at: datetime,
        time_spent_seconds: int,
        client_time_spent_seconds: int | None,
        auto_submitted: bool,
        result: ScoreResult,
    ) -> None:
        """Atomically move an attempt to a terminal state with its score.

        All-or-nothing: the state transition and the per-question answer rows
        are committed together, or not at all.
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"cannot finalize into {status}")

        stmt = (
            update(ExamAttempt)
            .where(
                ExamAttempt.id == attempt_id,
                ExamAttempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .values(
                status=status,
                submitted_at=submitted_at,
                time_spent_seconds=time_spent_seconds,
                client_time_spent_seconds=client_time_spent_seconds,
                auto_submitted=auto_submitted,
                score=result.score,
                earned_points=result.earned_points,
                total_points=result.total_points,
                passed=result.passed,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            outcome = self._db.execute(stmt)
            if outcome.rowcount != 1:
                self._db.rollback()
                raise AttemptNotInProgress(attempt_id)

            self._db.add_all(
                ExamAnswer(
                    attempt_id=attempt_id,
                    question_id=o.question_id,
                    answer=o.submitted,
                    is_correct=o.is_correct,
                    points_earned=o.points_earned,
                )
                for o in result.outcomes
            )
            self._db.commit()
        except AttemptNotInProgress:
            raise
        except Exception:
            self._db.rollback()
            raise
        # The session still holds the pre-update row
        self._db.expire_all()

    def attach_certificate(self, attempt_id: uuid.UUID, certificate_id: uuid.UUID) -> None:
        self._db.execute(
            update(ExamAttempt)
            .where(ExamAttempt.id == attempt_id)
            .values(certificate_id=certificate_id)
            .execution_options(synchronize_session=False)
        )
        self._db.commit()
        self._db.expire_all()
