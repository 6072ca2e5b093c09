"""API route package — imports all routers for main.py."""

from exam_engine.api.health import router as health_router  # noqa: F401
from exam_engine.api.exams import router as exams_router  # noqa: F401
from exam_engine.api.attempts import router as attempts_router  # noqa: F401
from exam_engine.api.certificates import router as certificates_router  # noqa: F401
