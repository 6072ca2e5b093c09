"""FastAPI dependencies shared across routes."""

import uuid
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from exam_engine.core.security import decode_access_token
from exam_engine.db.session import get_db
from exam_engine.services.attempt_engine import AttemptEngine
from exam_engine.services.certificates import get_certificate_issuer
from exam_engine.tasks import enqueue_certificate_retry

# Tokens are minted by the identity service; the URL is only used by the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class CurrentUser(BaseModel):
    id: uuid.UUID
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Decode the bearer JWT into the caller's identity, or 401."""
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload"
        )
    return CurrentUser(id=user_id, role=str(payload.get("role") or "student"))


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Raise 403 unless the caller is an admin."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


def get_now() -> datetime:
    """Server clock; overridden in tests to pin ``now``."""
    return datetime.now(timezone.utc)


def get_attempt_engine(db: Session = Depends(get_db)) -> AttemptEngine:
    return AttemptEngine(
        db,
        issuer=get_certificate_issuer(db),
        defer_issuance=enqueue_certificate_retry,
    )
