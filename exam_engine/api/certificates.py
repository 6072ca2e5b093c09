"""Certificate routes: the caller's certificates and public validation."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, selectinload

from exam_engine.api.deps import CurrentUser, get_current_user
from exam_engine.db.models import Certificate
from exam_engine.db.session import get_db
from exam_engine.schemas.certificate import CertificateRead, CertificateValidation
from exam_engine.services.certificates import parse_certificate_code, to_certificate_read

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[CertificateRead])
def list_my_certificates(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    certs = (
        db.query(Certificate)
        .options(selectinload(Certificate.exam))
        .filter(Certificate.user_id == current_user.id)
        .order_by(Certificate.issued_at.desc())
        .all()
    )
    return [to_certificate_read(c) for c in certs]


@router.get("/validate", response_model=CertificateValidation)
def validate_certificate(
    id: str = Query(..., min_length=1, description="Certificate code, e.g. CERT-<uuid>"),
    db: Session = Depends(get_db),
):
    """Public check of a certificate code; no authentication required."""
    certificate_id = parse_certificate_code(id)
    if certificate_id is None:
        return CertificateValidation(valid=False)

    cert = (
        db.query(Certificate)
        .options(selectinload(Certificate.exam))
        .filter(Certificate.id == certificate_id)
        .first()
    )
    if cert is None:
        logger.info("Validation of unknown certificate %s", certificate_id)
        return CertificateValidation(valid=False)
    return CertificateValidation(valid=True, certificate=to_certificate_read(cert))
