"""Shared pytest fixtures for exam engine tests."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from exam_engine.api.deps import get_now
from exam_engine.core.security import create_access_token
from exam_engine.db.models import Exam, ExamQuestion
from exam_engine.db.session import Base, get_db
from exam_engine.main import app

# Use an in-memory SQLite database for testing with static pool
SQLALCHEMY_TEST_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool to keep connection alive
    echo=False,
)
TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock used in place of ``get_now``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(autouse=True)
def deferred_certificates():
    """Mock the certificate retry task so no test needs a broker."""
    mock_task = MagicMock(return_value=MagicMock(id="fake-task-id"))
    mock_task.delay = MagicMock(return_value=MagicMock(id="fake-task-id"))

    # Patch at the import point in the tasks module
    with patch("exam_engine.tasks.issue_pending_certificate", mock_task):
        yield mock_task


@pytest.fixture(scope="function")
def db():
    """Fresh tables and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_sessions(db: Session, monkeypatch):
    """Point Celery tasks at the test database instead of DATABASE_URL."""
    monkeypatch.setattr("exam_engine.tasks.get_session_factory", lambda: TestSession)
    return TestSession


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture(scope="function")
def client(db: Session, clock: FakeClock):
    """FastAPI test client with overridden DB and clock dependencies."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock

    # Remove TrustedHostMiddleware for tests to allow 'testserver' host
    app.user_middleware = [m for m in app.user_middleware if "TrustedHost" not in str(m)]

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def student_id() -> uuid.UUID:
    return uuid.uuid4()


def auth_headers(user_id: uuid.UUID, role: str = "student") -> dict:
    token = create_access_token({"sub": str(user_id), "role": role})
    return {"Authorization": f"Bearer {token}"}


def two_mc_questions() -> list[dict]:
    """MC worth 2 points (answer A) and MC worth 3 points (answer B)."""
    return [
        {
            "prompt": "Capital of Italy?",
            "question_type": "multiple_choice",
            "options": ["Rome", "Milan", "Turin"],
            "correct_answer": "A",
            "points": 2,
        },
        {
            "prompt": "Largest planet?",
            "question_type": "multiple_choice",
            "options": ["Mars", "Jupiter", "Venus"],
            "correct_answer": "B",
            "points": 3,
        },
    ]


@pytest.fixture
def make_exam(db: Session):
    """Factory inserting a published exam with the given questions."""

    def _make(questions: list[dict] | None = None, **policy) -> Exam:
        fields = {
            "title": "Sample exam",
            "course_id": "course-1",
            "passing_score": 60.0,
            "time_limit_seconds": 600,
            "max_attempts": 3,
            "is_published": True,
        }
        fields.update(policy)
        exam = Exam(**fields)
        for position, q in enumerate(questions if questions is not None else two_mc_questions()):
            question = ExamQuestion(
                position=position,
                prompt=q["prompt"],
                question_type=q.get("question_type", "multiple_choice"),
                correct_answer=q.get("correct_answer"),
                explanation=q.get("explanation"),
                points=q.get("points", 1),
                difficulty=q.get("difficulty", "medium"),
            )
            question.set_options(q.get("options"))
            exam.questions.append(question)
        db.add(exam)
        db.commit()
        db.refresh(exam)
        return exam

    return _make


def answers_by_prompt(exam: Exam, by_prompt: dict[str, str | None]) -> dict[str, str | None]:
    """Translate ``{prompt: answer}`` into the ``{question_id: answer}`` submit shape."""
    ids = {q.prompt: str(q.id) for q in exam.questions}
    return {ids[prompt]: answer for prompt, answer in by_prompt.items()}
