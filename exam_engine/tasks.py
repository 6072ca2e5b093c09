"""Background tasks executed by Celery workers."""

import logging
import uuid

from exam_engine.celery_app import celery_app
from exam_engine.config import settings
from exam_engine.db.session import get_session_factory
from exam_engine.services.attempt_engine import AttemptEngine
from exam_engine.services.errors import CertificateIssuanceError

logger = logging.getLogger(__name__)


def retry_countdown(retries: int) -> int:
    """Back-off before retry number ``retries + 1`` (10s, 30s, 90s, …)."""
    return 10 * (3**retries)


@celery_app.task(
    bind=True, name="issue_pending_certificate", max_retries=settings.CERTIFICATE_RETRY_MAX
)
def issue_pending_certificate(self, attempt_id: str) -> dict:
    """Issue the certificate of a passed attempt whose first issuance failed.

    Retries with exponential back-off while the issuer stays unavailable; the
    periodic sweep re-enqueues anything still pending after the retries run
    out.  Run eagerly (no worker), a failure is left to the sweep instead of
    being retried inline.
    """
    factory = get_session_factory()
    db = factory()
    try:
        engine = AttemptEngine(db)
        certificate_id = engine.retry_certificate(uuid.UUID(attempt_id))
        if certificate_id is None:
            logger.info("Attempt %s did not pass — nothing to issue", attempt_id)
            return {"success": False, "error": "not_passed"}
        return {
            "success": True,
            "attempt_id": attempt_id,
            "certificate_id": str(certificate_id),
        }
    except CertificateIssuanceError as exc:
        logger.warning(
            "Certificate retry %d failed for attempt %s: %s",
            self.request.retries + 1, attempt_id, exc.message,
        )
        if self.request.is_eager:
            return {"success": False, "error": "issuer_unavailable"}
        raise self.retry(exc=exc, countdown=retry_countdown(self.request.retries))
    finally:
        db.close()


def enqueue_certificate_retry(attempt_id: uuid.UUID) -> None:
    """Queue ``issue_pending_certificate`` for a worker.

    In eager mode the task would just call the failing issuer again inside
    the current request, so the attempt is left for ``retry_pending_certificates``.
    """
    if celery_app.conf.task_always_eager:
        logger.info(
            "No Celery worker (eager mode) — certificate for attempt %s left to the sweep",
            attempt_id,
        )
        return
    issue_pending_certificate.delay(str(attempt_id))


@celery_app.task(name="retry_pending_certificates")
def retry_pending_certificates() -> dict:
    """Re-enqueue every passed attempt that still has no certificate."""
    factory = get_session_factory()
    db = factory()
    try:
        pending = AttemptEngine(db).pending_certificate_attempts()
    finally:
        db.close()

    for attempt_id in pending:
        issue_pending_certificate.delay(str(attempt_id))
    if pending:
        logger.info("Re-enqueued certificate issuance for %d attempt(s)", len(pending))
    return {"success": True, "enqueued": len(pending)}


@celery_app.task(name="expire_stale_attempts")
def expire_stale_attempts() -> dict:
    """Finalize in-progress attempts whose time limit plus grace has passed."""
    factory = get_session_factory()
    db = factory()
    try:
        engine = AttemptEngine(db, defer_issuance=enqueue_certificate_retry)
        expired = engine.expire_overdue()
    finally:
        db.close()
    return {"success": True, "expired": expired}
