"""
Pipeline Journey - FastAPI Application
Main entry point with all routes configured.
"""
import logging
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from pipeline_journey.config import settings
from pipeline_journey.core.exceptions import (
    NotFoundError, StageConflictError, ValidationError
)
from pipeline_journey.core.logging import setup_logging
from pipeline_journey.database import init_db
from pipeline_journey.schemas.common import HealthResponse
from pipeline_journey.services.dispatch_worker import DispatchWorker

# Import all API routers
from pipeline_journey.api import pipeline, journey

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    setup_logging()
    await init_db()

    # Polls on an interval when enabled; otherwise only runs on demand
    worker = DispatchWorker()
    if settings.DISPATCH_WORKER_ENABLED:
        worker.start()
    app.state.dispatch_worker = worker
    yield
    # Shutdown
    await worker.shutdown()


app = FastAPI(
    title="Pipeline Journey API",
    description="Gated pipeline stage moves and scheduled customer-journey messages",
    version=VERSION,
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(StageConflictError)
async def stage_conflict_handler(request: Request, exc: StageConflictError):
    logger.info(f"Move conflict: {exc.message}", extra={"lead_id": exc.lead_id})
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": exc.message, "retryable": exc.retryable}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": exc.message})


# Include all routers
app.include_router(pipeline.router)
app.include_router(journey.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "message": "Pipeline Journey API is running",
        "version": VERSION,
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Detailed health check."""
    return HealthResponse(status="healthy", version=VERSION)
