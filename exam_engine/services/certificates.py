"""Certificate issuers.

Contract: ``issue(user_id, exam_id, score, now) -> certificate_id``, idempotent
per (user_id, exam_id).  A second call for an exam the user already holds a
certificate for returns the existing id without creating anything.

Two implementations:

- ``LocalCertificateIssuer`` — writes the ``certificates`` table directly
- ``HTTPCertificateIssuer``  — calls the remote certificate service

Both raise ``CertificateIssuanceError`` when issuance fails; callers treat
that as a retryable side effect.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Protocol

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from exam_engine.config import settings
from exam_engine.db.models import Certificate, Exam
from exam_engine.schemas.certificate import (
    CERTIFICATE_CODE_PREFIX,
    CertificateRead,
    certificate_code,
)
from exam_engine.services.errors import CertificateIssuanceError

logger = logging.getLogger(__name__)


class CertificateIssuer(Protocol):
    def issue(
        self, user_id: uuid.UUID, exam_id: uuid.UUID, score: float, now: datetime
    ) -> uuid.UUID: ...


# ── Local (same database) ─────────────────────────────────────────────────────


class LocalCertificateIssuer:
    """Issues certificates into the service's own ``certificates`` table."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _existing(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> Certificate | None:
        return (
            self._db.query(Certificate)
            .filter(Certificate.user_id == user_id, Certificate.exam_id == exam_id)
            .first()
        )

    def issue(
        self, user_id: uuid.UUID, exam_id: uuid.UUID, score: float, now: datetime
    ) -> uuid.UUID:
        try:
            existing = self._existing(user_id, exam_id)
            if existing is not None:
                logger.info(
                    "Certificate %s already issued for user=%s exam=%s",
                    existing.id, user_id, exam_id,
                )
                return existing.id

            exam = self._db.query(Exam).filter(Exam.id == exam_id).first()
            cert = Certificate(
                user_id=user_id,
                exam_id=exam_id,
                course_id=exam.course_id if exam else None,
                score=score,
                issued_at=now,
            )
            self._db.add(cert)
            try:
                self._db.commit()
            except IntegrityError:
                # Lost the race on uq_certificate_user_exam: return the winner
                self._db.rollback()
                winner = self._existing(user_id, exam_id)
                if winner is None:
                    raise CertificateIssuanceError("Certificate insert rejected")
                return winner.id

            logger.info("Issued certificate %s for user=%s exam=%s", cert.id, user_id, exam_id)
            return cert.id
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise CertificateIssuanceError(f"Certificate store error: {exc}") from exc


# ── Remote certificate service ────────────────────────────────────────────────


class HTTPCertificateIssuer:
    """Thin wrapper around the certificate service HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base = (base_url or settings.CERTIFICATE_SERVICE_URL).rstrip("/")
        self._http = httpx.Client(
            base_url=self._base,
            timeout=timeout or settings.CERTIFICATE_SERVICE_TIMEOUT,
            transport=transport,
        )

    def issue(
        self, user_id: uuid.UUID, exam_id: uuid.UUID, score: float, now: datetime
    ) -> uuid.UUID:
        try:
            r = self._http.post(
                "/certificates/issue",
                json={
                    "user_id": str(user_id),
                    "exam_id": str(exam_id),
                    "score": score,
                    "issued_at": now.isoformat(),
                },
            )
            r.raise_for_status()
            return uuid.UUID(r.json()["certificate_id"])
        except httpx.HTTPError as exc:
            raise CertificateIssuanceError(f"Certificate service error: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise CertificateIssuanceError(f"Malformed certificate service reply: {exc}") from exc

    def close(self) -> None:
        self._http.close()


# ── accessor ──────────────────────────────────────────────────────────────────

_http_instance: HTTPCertificateIssuer | None = None


def get_certificate_issuer(db: Session) -> CertificateIssuer:
    """Remote issuer when CERTIFICATE_SERVICE_URL is set, local otherwise."""
    global _http_instance
    if not settings.CERTIFICATE_SERVICE_URL:
        return LocalCertificateIssuer(db)
    if _http_instance is None:
        _http_instance = HTTPCertificateIssuer()
        logger.info("Certificate service client initialised → %s", _http_instance._base)
    return _http_instance


def close_certificate_issuer() -> None:
    """Close the shared certificate service client, if one was opened."""
    global _http_instance
    if _http_instance is not None:
        _http_instance.close()
        _http_instance = None
        logger.info("Certificate service client closed")


# ── read side ─────────────────────────────────────────────────────────────────


def to_certificate_read(cert: Certificate) -> CertificateRead:
    return CertificateRead(
        id=cert.id,
        code=certificate_code(cert.id),
        user_id=cert.user_id,
        exam_id=cert.exam_id,
        exam_title=cert.exam.title if cert.exam else None,
        course_id=cert.course_id,
        score=cert.score,
        issued_at=cert.issued_at,
    )


def parse_certificate_code(raw: str) -> uuid.UUID | None:
    """Accept ``CERT-<uuid>`` or a bare uuid; None if neither."""
    cleaned = raw.strip()
    if cleaned.upper().startswith(CERTIFICATE_CODE_PREFIX):
        cleaned = cleaned[len(CERTIFICATE_CODE_PREFIX):]
    try:
        return uuid.UUID(cleaned.strip())
    except ValueError:
        return None
