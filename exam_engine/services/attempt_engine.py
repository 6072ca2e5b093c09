"""Attempt state machine.

    NotStarted ──start──▶ InProgress ──submit──▶ Submitted
                              │
                              └──time up──▶ Expired

Both terminal states are final.  Expiry is evaluated lazily whenever a start
or submit touches the attempt (plus an optional periodic sweep); the server
clock is the only source of truth for elapsed time.

The engine is transport-agnostic: the FastAPI routes, the Celery tasks and
the tests all drive it directly.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.db.models import AttemptStatusEnum, ExamAttempt
from exam_engine.schemas.attempt import (
    AnswerBreakdown,
    AttemptDetailRead,
    AttemptResultRead,
    AttemptStartRead,
    AttemptStatus,
    AttemptSummary,
    ExamDetailRead,
    UserExamStats,
)
from exam_engine.schemas.exam import ExamRecord
from exam_engine.services.attempt_store import (
    TERMINAL_STATUSES,
    AttemptStore,
    StartConflict,
    as_utc,
)
from exam_engine.services.certificates import CertificateIssuer, get_certificate_issuer
from exam_engine.services.errors import (
    AlreadyPassed,
    AttemptConflict,
    AttemptExpired,
    AttemptLimitExceeded,
    AttemptNotFound,
    AttemptNotInProgress,
    CertificateIssuanceError,
    ExamNotFound,
    ExamUnavailable,
)
from exam_engine.services.question_bank import QuestionBank
from exam_engine.services.scoring import score_submission
from exam_engine.services.shuffling import present_questions

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_seconds(attempt: ExamAttempt, now: datetime) -> int:
    """Whole seconds since the attempt started, never negative."""
    delta = as_utc(now) - as_utc(attempt.started_at)
    return max(0, int(delta.total_seconds()))


def remaining_seconds(exam: ExamRecord, attempt: ExamAttempt, now: datetime) -> int:
    return max(0, exam.time_limit_seconds - elapsed_seconds(attempt, now))


def to_summary(attempt: ExamAttempt) -> AttemptSummary:
    return AttemptSummary(
        id=attempt.id,
        exam_id=attempt.exam_id,
        attempt_number=attempt.attempt_number,
        status=AttemptStatus(attempt.status.value),
        started_at=as_utc(attempt.started_at),
        submitted_at=as_utc(attempt.submitted_at) if attempt.submitted_at else None,
        time_spent_seconds=attempt.time_spent_seconds,
        score=attempt.score,
        passed=attempt.passed,
        certificate_id=attempt.certificate_id,
    )


class AttemptEngine:
    """Start / resume / submit / expire exam attempts."""

    def __init__(
        self,
        db: Session,
        *,
        question_bank: QuestionBank | None = None,
        store: AttemptStore | None = None,
        issuer: CertificateIssuer | None = None,
        grace_seconds: int | None = None,
        defer_issuance: Callable[[uuid.UUID], None] | None = None,
    ) -> None:
        self._bank = question_bank or QuestionBank(db)
        self._store = store or AttemptStore(db)
        self._issuer = issuer or get_certificate_issuer(db)
        self._grace = settings.SUBMIT_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self._defer_issuance = defer_issuance

    # ── helpers ───────────────────────────────────────────────────────────

    def _load_exam(self, exam_id: uuid.UUID) -> ExamRecord:
        exam = self._bank.get(exam_id)
        if exam is None:
            raise ExamNotFound(exam_id)
        return exam

    @staticmethod
    def _check_availability(exam: ExamRecord, now: datetime) -> None:
        if not exam.is_published or not exam.is_active:
            raise ExamUnavailable(exam.id, "not_published")
        if exam.available_from and now < as_utc(exam.available_from):
            raise ExamUnavailable(exam.id, "not_yet_available", "Exam is not yet available")
        if exam.available_until and now > as_utc(exam.available_until):
            raise ExamUnavailable(
                exam.id, "availability_ended", "Exam availability period has ended"
            )

    def _owned_attempt(self, attempt_id: uuid.UUID, user_id: uuid.UUID | None) -> ExamAttempt:
        attempt = self._store.get(attempt_id)
        # Someone else's attempt is indistinguishable from a missing one
        if attempt is None or (user_id is not None and attempt.user_id != user_id):
            raise AttemptNotFound(attempt_id)
        return attempt

    def _start_read(
        self, exam: ExamRecord, attempt: ExamAttempt, now: datetime, *, resuming: bool
    ) -> AttemptStartRead:
        started_at = as_utc(attempt.started_at)
        return AttemptStartRead(
            attempt_id=attempt.id,
            exam_id=exam.id,
            attempt_number=attempt.attempt_number,
            max_attempts=exam.max_attempts,
            started_at=started_at,
            expires_at=started_at + timedelta(seconds=exam.time_limit_seconds),
            time_limit_seconds=exam.time_limit_seconds,
            remaining_time_seconds=remaining_seconds(exam, attempt, now),
            resuming=resuming,
            questions=present_questions(exam, attempt.id),
        )

    def _result(self, exam: ExamRecord, attempt_id: uuid.UUID) -> AttemptResultRead:
        """Build the result purely from the stored row, so replays are identical."""
        attempt = self._store.get(attempt_id)
        if attempt is None or attempt.status not in TERMINAL_STATUSES:
            raise AttemptNotFound(attempt_id)

        breakdown = None
        if exam.show_results_after_submit:
            rows = {a.question_id: a for a in attempt.answers}
            breakdown = [
                AnswerBreakdown(
                    question_id=q.id,
                    prompt=q.prompt,
                    submitted_answer=rows[q.id].answer,
                    correct_answer=q.correct_answer,
                    is_correct=rows[q.id].is_correct,
                    points=q.points,
                    points_earned=rows[q.id].points_earned,
                    explanation=q.explanation,
                )
                for q in exam.questions
                if q.id in rows
            ]

        return AttemptResultRead(
            attempt_id=attempt.id,
            exam_id=attempt.exam_id,
            attempt_number=attempt.attempt_number,
            status=AttemptStatus(attempt.status.value),
            score=attempt.score or 0.0,
            earned_points=attempt.earned_points or 0,
            total_points=attempt.total_points or 0,
            passed=bool(attempt.passed),
            passing_score=exam.passing_score,
            time_spent_seconds=attempt.time_spent_seconds or 0,
            submitted_at=as_utc(attempt.submitted_at),
            certificate_id=attempt.certificate_id,
            breakdown=breakdown,
        )

    # ── finalization ──────────────────────────────────────────────────────

    def _finalize(
        self,
        exam: ExamRecord,
        attempt: ExamAttempt,
        answers: Mapping[str, str | None],
        now: datetime,
        *,
        status: AttemptStatusEnum,
        client_time_spent_seconds: int | None = None,
        auto_submitted: bool = False,
    ) -> None:
        attempt_id = attempt.id
        user_id = attempt.user_id
        elapsed = elapsed_seconds(attempt, now)

        result = score_submission(exam.questions, answers, exam.passing_score)
        try:
            self._store.finalize(
                attempt_id,
                status=status,
                submitted_at=now,
                time_spent_seconds=elapsed,
                client_time_spent_seconds=client_time_spent_seconds,
                auto_submitted=auto_submitted,
                result=result,
            )
        except AttemptNotInProgress:
            logger.info(
                "Attempt %s was finalized concurrently — keeping the stored result",
                attempt_id,
            )
            return

        logger.info(
            "Attempt %s finalized as %s: %d/%d (%.2f%%) passed=%s",
            attempt_id, status.value, result.earned_points, result.total_points,
            result.score, result.passed,
        )
        if result.passed:
            self._issue_certificate(attempt_id, user_id, exam.id, result.score, now)

    def _issue_certificate(
        self,
        attempt_id: uuid.UUID,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        score: float,
        now: datetime,
    ) -> uuid.UUID | None:
        try:
            certificate_id = self._issuer.issue(user_id, exam_id, score, now)
        except CertificateIssuanceError as exc:
            logger.warning(
                "Certificate issuance deferred for attempt %s: %s", attempt_id, exc.message
            )
            self._defer(attempt_id)
            return None
        self._store.attach_certificate(attempt_id, certificate_id)
        return certificate_id

    def _defer(self, attempt_id: uuid.UUID) -> None:
        if self._defer_issuance is None:
            return
        try:
            self._defer_issuance(attempt_id)
        except Exception:
            # The periodic certificate sweep picks up anything left behind
            logger.exception("Could not enqueue certificate retry for attempt %s", attempt_id)

    # ── operations ────────────────────────────────────────────────────────

    def start_attempt(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        now: datetime | None = None,
    ) -> AttemptStartRead:
        """Create a new attempt, or resume the one already in progress.

        Raises:
            ExamNotFound / ExamUnavailable: exam missing, unpublished or
                outside its availability window.
            AttemptExpired: the in-progress attempt ran out of time; it has
                now been finalized as expired.
            AlreadyPassed: a previous attempt passed.
            AttemptLimitExceeded: no attempts left.
        """
        now = as_utc(now or _utcnow())
        exam = self._load_exam(exam_id)
        self._check_availability(exam, now)

        active = self._store.get_active(user_id, exam_id)
        if active is not None:
            return self._resume(exam, active, now)

        history = self._store.finalized_for_user(user_id, exam_id)
        if any(a.passed for a in history):
            best = max(a.score or 0.0 for a in history)
            certificate_id = next((a.certificate_id for a in history if a.certificate_id), None)
            raise AlreadyPassed(best, certificate_id)
        if len(history) >= exam.max_attempts:
            raise AttemptLimitExceeded(len(history), exam.max_attempts)

        try:
            attempt = self._store.create(user_id, exam_id, len(history) + 1, now)
        except StartConflict:
            active = self._store.get_active(user_id, exam_id)
            if active is None:
                raise AttemptConflict(exam_id)
            logger.info("Concurrent start for user=%s exam=%s — resuming winner", user_id, exam_id)
            return self._resume(exam, active, now)

        logger.info(
            "Started attempt %s (#%d/%d) user=%s exam=%s",
            attempt.id, attempt.attempt_number, exam.max_attempts, user_id, exam_id,
        )
        return self._start_read(exam, attempt, now, resuming=False)

    def _resume(self, exam: ExamRecord, attempt: ExamAttempt, now: datetime) -> AttemptStartRead:
        if remaining_seconds(exam, attempt, now) <= 0:
            logger.info("Attempt %s ran out of time before resume — expiring", attempt.id)
            attempt_id = attempt.id
            self._finalize(exam, attempt, {}, now, status=AttemptStatusEnum.EXPIRED, auto_submitted=True)
            raise AttemptExpired(attempt_id)
        logger.info("Resuming attempt %s", attempt.id)
        return self._start_read(exam, attempt, now, resuming=True)

    def submit_attempt(
        self,
        attempt_id: uuid.UUID,
        answers: Mapping[str, str | None],
        *,
        user_id: uuid.UUID | None = None,
        client_time_spent_seconds: int | None = None,
        auto_submit: bool = False,
        now: datetime | None = None,
    ) -> AttemptResultRead:
        """Score and finalize an attempt; idempotent on repeated calls.

        A submit for an attempt that is already terminal returns the stored
        result without re-scoring or re-issuing anything.
        """
        now = as_utc(now or _utcnow())
        attempt = self._owned_attempt(attempt_id, user_id)
        exam = self._load_exam(attempt.exam_id)

        if attempt.status in TERMINAL_STATUSES:
            logger.info("Attempt %s already %s — replaying stored result", attempt_id, attempt.status.value)
            return self._result(exam, attempt_id)

        elapsed = elapsed_seconds(attempt, now)
        if client_time_spent_seconds is not None and abs(client_time_spent_seconds - elapsed) > self._grace:
            logger.warning(
                "Attempt %s: client reports %ds spent, server measured %ds",
                attempt_id, client_time_spent_seconds, elapsed,
            )

        if elapsed > exam.time_limit_seconds + self._grace:
            status = AttemptStatusEnum.EXPIRED
        else:
            status = AttemptStatusEnum.SUBMITTED

        self._finalize(
            exam,
            attempt,
            answers,
            now,
            status=status,
            client_time_spent_seconds=client_time_spent_seconds,
            auto_submitted=auto_submit,
        )
        return self._result(exam, attempt_id)

    def get_user_stats(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        now: datetime | None = None,
    ) -> UserExamStats:
        now = as_utc(now or _utcnow())
        return self._user_stats(self._load_exam(exam_id), user_id, now)

    def _user_stats(self, exam: ExamRecord, user_id: uuid.UUID, now: datetime) -> UserExamStats:
        attempts = self._store.list_for_user(user_id, exam.id)

        finalized = [a for a in attempts if a.status in TERMINAL_STATUSES]
        scores = [a.score for a in finalized if a.score is not None]
        has_passed = any(a.passed for a in finalized)
        active = next((a for a in attempts if a.status == AttemptStatusEnum.IN_PROGRESS), None)

        return UserExamStats(
            exam_id=exam.id,
            attempts=len(attempts),
            max_attempts=exam.max_attempts,
            best_score=max(scores) if scores else None,
            has_passed=has_passed,
            can_retake=len(attempts) < exam.max_attempts and not has_passed,
            has_active_attempt=active is not None and remaining_seconds(exam, active, now) > 0,
            last_attempt=to_summary(attempts[0]) if attempts else None,
        )

    def get_exam_detail(
        self,
        user_id: uuid.UUID,
        exam_id: uuid.UUID,
        now: datetime | None = None,
    ) -> ExamDetailRead:
        """Exam policy and the caller's standing, without starting an attempt.

        Subject to the same availability checks as :meth:`start_attempt`.
        """
        now = as_utc(now or _utcnow())
        exam = self._load_exam(exam_id)
        self._check_availability(exam, now)
        return ExamDetailRead(
            id=exam.id,
            course_id=exam.course_id,
            title=exam.title,
            description=exam.description,
            passing_score=exam.passing_score,
            time_limit_seconds=exam.time_limit_seconds,
            max_attempts=exam.max_attempts,
            question_count=len(exam.questions),
            total_points=sum(max(q.points, 0) for q in exam.questions),
            shuffle_questions=exam.shuffle_questions,
            show_results_after_submit=exam.show_results_after_submit,
            available_from=as_utc(exam.available_from) if exam.available_from else None,
            available_until=as_utc(exam.available_until) if exam.available_until else None,
            user_stats=self._user_stats(exam, user_id, now),
        )

    def list_attempts(
        self, user_id: uuid.UUID, exam_id: uuid.UUID | None = None
    ) -> list[AttemptSummary]:
        return [to_summary(a) for a in self._store.list_for_user(user_id, exam_id)]

    def get_attempt(self, attempt_id: uuid.UUID, user_id: uuid.UUID | None = None) -> AttemptDetailRead:
        attempt = self._owned_attempt(attempt_id, user_id)
        summary = to_summary(attempt)
        result = None
        if attempt.status in TERMINAL_STATUSES:
            result = self._result(self._load_exam(attempt.exam_id), attempt_id)
        return AttemptDetailRead(**summary.model_dump(), result=result)

    # ── background maintenance ────────────────────────────────────────────

    def expire_overdue(self, now: datetime | None = None) -> int:
        """Finalize every in-progress attempt whose time (plus grace) is up."""
        now = as_utc(now or _utcnow())
        exams: dict[uuid.UUID, ExamRecord | None] = {}
        expired = 0
        for attempt in self._store.in_progress():
            if attempt.exam_id not in exams:
                exams[attempt.exam_id] = self._bank.get(attempt.exam_id)
            exam = exams[attempt.exam_id]
            if exam is None:
                continue
            if elapsed_seconds(attempt, now) > exam.time_limit_seconds + self._grace:
                self._finalize(exam, attempt, {}, now, status=AttemptStatusEnum.EXPIRED, auto_submitted=True)
                expired += 1
        if expired:
            logger.info("Expiry sweep finalized %d overdue attempt(s)", expired)
        return expired

    def retry_certificate(self, attempt_id: uuid.UUID, now: datetime | None = None) -> uuid.UUID | None:
        """Issue the certificate of a passed attempt that does not have one yet.

        Raises ``CertificateIssuanceError`` so the caller (a Celery task) can
        retry with back-off.
        """
        now = as_utc(now or _utcnow())
        attempt = self._owned_attempt(attempt_id, None)
        if not attempt.passed:
            return None
        if attempt.certificate_id is not None:
            return attempt.certificate_id
        certificate_id = self._issuer.issue(attempt.user_id, attempt.exam_id, attempt.score or 0.0, now)
        self._store.attach_certificate(attempt_id, certificate_id)
        logger.info("Certificate %s issued on retry for attempt %s", certificate_id, attempt_id)
        return certificate_id

    def pending_certificate_attempts(self) -> list[uuid.UUID]:
        return [a.id for a in self._store.passed_without_certificate()]
