"""Pydantic schemas — re‑exported for convenience."""

from exam_engine.schemas.common import ErrorResponse  # noqa: F401
from exam_engine.schemas.exam import (  # noqa: F401
    AttemptQuestionRead,
    Difficulty,
    ExamCreate,
    ExamRecord,
    OptionRead,
    QuestionCreate,
    QuestionRecord,
    QuestionType,
)
from exam_engine.schemas.attempt import (  # noqa: F401
    AnswerBreakdown,
    AttemptDetailRead,
    AttemptResultRead,
    AttemptStartRead,
    AttemptStatus,
    AttemptSubmit,
    AttemptSummary,
    ExamDetailRead,
    UserExamStats,
)
from exam_engine.schemas.certificate import (  # noqa: F401
    CertificateRead,
    CertificateValidation,
)
from exam_engine.schemas.analytics import ExamAnalyticsRead  # noqa: F401
