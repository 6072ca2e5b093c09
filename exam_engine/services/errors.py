"""Error taxonomy of the attempt engine.

Three families, matching how callers must react:

- ``PolicyError``        user-actionable, surfaced verbatim, never retried
- ``ConsistencyError``   attempt bookkeeping; mostly resolved internally
- ``DependencyFailure``  a collaborator is down; logged and deferred

Every error carries an ``error_code`` and an HTTP ``status_code`` so the API
layer can render it as the shared ``ErrorResponse`` envelope.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import status


class ExamEngineError(Exception):
    error_code = "exam_engine_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None} or None


# ── Policy ────────────────────────────────────────────────────────────────────


class PolicyError(ExamEngineError):
    error_code = "policy_error"
    status_code = status.HTTP_409_CONFLICT


class ExamUnavailable(PolicyError):
    error_code = "exam_unavailable"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, exam_id: uuid.UUID, reason: str, message: str | None = None) -> None:
        super().__init__(message or "Exam is not available", exam_id=str(exam_id), reason=reason)
        self.reason = reason


class ExamNotFound(ExamUnavailable):
    error_code = "exam_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, exam_id: uuid.UUID) -> None:
        super().__init__(exam_id, "not_found", "Exam not found")


class AttemptLimitExceeded(PolicyError):
    error_code = "attempt_limit_exceeded"

    def __init__(self, attempts_used: int, max_attempts: int) -> None:
        super().__init__(
            f"Maximum attempts ({max_attempts}) reached",
            attempts_used=attempts_used,
            max_attempts=max_attempts,
        )
        self.attempts_used = attempts_used
        self.max_attempts = max_attempts


class AlreadyPassed(PolicyError):
    error_code = "already_passed"

    def __init__(self, best_score: float, certificate_id: uuid.UUID | None = None) -> None:
        super().__init__(
            "You have already passed this exam",
            best_score=best_score,
            certificate_id=str(certificate_id) if certificate_id else None,
        )
        self.best_score = best_score
        self.certificate_id = certificate_id


class AttemptExpired(PolicyError):
    error_code = "attempt_expired"

    def __init__(self, attempt_id: uuid.UUID) -> None:
        super().__init__(
            "Time is up for this attempt; it can no longer be resumed",
            attempt_id=str(attempt_id),
        )
        self.attempt_id = attempt_id


# ── Consistency ───────────────────────────────────────────────────────────────


class ConsistencyError(ExamEngineError):
    error_code = "consistency_error"
    status_code = status.HTTP_409_CONFLICT


class AttemptNotFound(ConsistencyError):
    error_code = "attempt_not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, attempt_id: uuid.UUID) -> None:
        super().__init__("Attempt not found", attempt_id=str(attempt_id))
        self.attempt_id = attempt_id


class AttemptNotInProgress(ConsistencyError):
    """Raised by the store when a finalization loses to an earlier one."""

    error_code = "attempt_not_in_progress"

    def __init__(self, attempt_id: uuid.UUID) -> None:
        super().__init__("Attempt has already been finalized", attempt_id=str(attempt_id))
        self.attempt_id = attempt_id


class AttemptConflict(ConsistencyError):
    error_code = "attempt_conflict"

    def __init__(self, exam_id: uuid.UUID) -> None:
        super().__init__(
            "Another attempt was started concurrently; please retry",
            exam_id=str(exam_id),
        )


# ── Dependencies ──────────────────────────────────────────────────────────────


class DependencyFailure(ExamEngineError):
    error_code = "dependency_failure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class CertificateIssuanceError(DependencyFailure):
    error_code = "certificate_issuance_failed"

    def __init__(self, message: str = "Certificate issuer unavailable") -> None:
        super().__init__(message)
