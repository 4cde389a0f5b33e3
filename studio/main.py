"""
Subject Studio API
FastAPI Backend Entry Point
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studio.core.config import settings
from studio.core.database import init_db
from studio.core.redis import close_redis, redis_health_check
from studio.core.errors import (
    AccountNotFound,
    EntitlementError,
    InsufficientCredits,
    JobTimeout,
    MalformedResult,
    NotFound,
    ReconciliationError,
    RemoteFailure,
    SubmissionError,
    WorkerException,
)
from studio.api import batches, credits, generate, jobs, subjects, video

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: Create database tables
    logger.info("Starting Subject Studio API...")
    init_db()
    logger.info("Database tables ready")
    yield
    # Shutdown
    logger.info("Shutting down Subject Studio API...")
    close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    description="Credit-metered subject training, image batches and video generation",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(credits.router, prefix="/api/v1/credits", tags=["Credits"])
app.include_router(subjects.router, prefix="/api/v1", tags=["Training"])
app.include_router(generate.router, prefix="/api/v1", tags=["Image Generation"])
app.include_router(batches.router, prefix="/api/v1/batches", tags=["Batches"])
app.include_router(video.router, prefix="/api/v1/videos", tags=["Video Generation"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])


# Error mapping

def _error(status_code: int, exc: WorkerException, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": exc.message, **exc.details},
    )


@app.exception_handler(InsufficientCredits)
async def insufficient_credits_handler(request: Request, exc: InsufficientCredits):
    return _error(status.HTTP_402_PAYMENT_REQUIRED, exc, "Insufficient credits")


@app.exception_handler(EntitlementError)
async def entitlement_handler(request: Request, exc: EntitlementError):
    return _error(status.HTTP_409_CONFLICT, exc, "Not available")


@app.exception_handler(NotFound)
@app.exception_handler(AccountNotFound)
async def not_found_handler(request: Request, exc: WorkerException):
    return _error(status.HTTP_404_NOT_FOUND, exc, "Not found")


@app.exception_handler(SubmissionError)
@app.exception_handler(RemoteFailure)
@app.exception_handler(MalformedResult)
async def provider_failure_handler(request: Request, exc: WorkerException):
    logger.warning(f"{request.url.path}: {exc.message}")
    return _error(status.HTTP_502_BAD_GATEWAY, exc, "Generation failed")


@app.exception_handler(JobTimeout)
async def timeout_handler(request: Request, exc: JobTimeout):
    return _error(status.HTTP_504_GATEWAY_TIMEOUT, exc, "Timed out")


@app.exception_handler(ReconciliationError)
async def reconciliation_handler(request: Request, exc: ReconciliationError):
    logger.error(f"{request.url.path}: {exc.message}")
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR, exc,
        "Result could not be saved yet; it will be retried",
    )


@app.exception_handler(WorkerException)
async def worker_exception_handler(request: Request, exc: WorkerException):
    logger.error(f"{request.url.path}: unhandled {type(exc).__name__}: {exc.message}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc, "Internal error")


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint for load balancers and monitoring.
    Returns detailed status of critical services.
    """
    health = {
        "status": "healthy",
        "version": "0.1.0",
        "environment": {
            "database": "sqlite" if settings.DATABASE_URL.startswith("sqlite") else "postgresql",
            "compute_provider": "configured" if settings.FAL_KEY else "missing FAL_KEY",
            "email": "configured" if settings.RESEND_API_KEY else "disabled",
        },
        "services": {}
    }

    # Check database connection
    try:
        from studio.core.database import SessionLocal
        from sqlalchemy import text
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health["services"]["database"] = "ok"
    except Exception as e:
        health["services"]["database"] = f"error: {str(e)}"
        health["status"] = "degraded"

    # Check Redis connection
    try:
        redis_status = redis_health_check()
        if redis_status.get("connected"):
            health["services"]["redis"] = "ok"
            health["services"]["redis_version"] = redis_status.get("redis_version")
        else:
            health["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            health["status"] = "degraded"
    except Exception as e:
        health["services"]["redis"] = f"error: {str(e)}"
        health["status"] = "degraded"

    return health


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Subject Studio API",
        "docs": "/docs",
        "health": "/health",
    }
