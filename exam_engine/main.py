"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from exam_engine.config import settings
from exam_engine.api import (
    health_router,
    exams_router,
    attempts_router,
    certificates_router,
)
from exam_engine.schemas.common import ErrorResponse
from exam_engine.services.certificates import close_certificate_issuer
from exam_engine.services.errors import ExamEngineError

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Exam engine starting (env=%s)", settings.ENV)
    yield
    close_certificate_issuer()
    logger.info("Exam engine shut down")


app = FastAPI(
    title="Exam Engine API",
    description="Timed exam attempts, scoring and certification",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Errors ────────────────────────────────────────────────────────────────────


@app.exception_handler(ExamEngineError)
async def exam_engine_error_handler(request: Request, exc: ExamEngineError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(exams_router, prefix="/api/exams", tags=["Exams"])
app.include_router(attempts_router, prefix="/api/attempts", tags=["Attempts"])
app.include_router(certificates_router, prefix="/api/certificates", tags=["Certificates"])


@app.get("/")
async def root():
    return {
        "name": "Exam Engine API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
