"""Certificate schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel

CERTIFICATE_CODE_PREFIX = "CERT-"


def certificate_code(certificate_id: uuid.UUID) -> str:
    """Human-facing code printed on a certificate."""
    return f"{CERTIFICATE_CODE_PREFIX}{certificate_id}"


class CertificateRead(BaseModel):
    id: uuid.UUID
    code: str
    user_id: uuid.UUID
    exam_id: uuid.UUID
    exam_title: str | None = None
    course_id: str | None = None
    score: float
    issued_at: datetime


class CertificateValidation(BaseModel):
    """Public answer to "is this certificate genuine?"."""

    valid: bool
    certificate: CertificateRead | None = None
