# pyright: reportMissingTypeStubs=false
"""
Care Connect Backend API

A FastAPI application governing what providers may see and do with a
patient's health records.

Features:
- Provider/patient connections with a request/approve/deny/revoke workflow
- Connection-gated access to consultations and medical records
- Notification outbox drained by a background scheduler
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import access, connections, consultations, medical_records
from core.config import NOTIFICATION_SCHEDULER_ENABLED
from core.constants import CORS_ORIGINS
from core.exceptions import (
    AccessControlError,
    AlreadyExistsError,
    InvalidTransitionError,
    NotFoundError,
    StoreConflictError,
    UnauthorizedError,
)
from services.notification_scheduler import start_notification_scheduler, stop_notification_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("Care Connect API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Care Connect Backend API")

    # Database sessions are created fresh for each scheduler run
    if NOTIFICATION_SCHEDULER_ENABLED:
        try:
            await start_notification_scheduler()
        except Exception as e:
            logger.exception(f"Failed to start notification scheduler: {e}")

    yield

    try:
        await stop_notification_scheduler()
    except Exception as e:
        logger.exception(f"Error stopping notification scheduler: {e}")

    logger.info("Shutting down Care Connect Backend API")


# Create FastAPI application
app = FastAPI(
    title="Care Connect Backend",
    description="Connection-based access control for patient health records",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    connections.router,
    prefix="/api/connections",
    tags=["connections"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    consultations.router,
    prefix="/api",
    tags=["consultations"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    medical_records.router,
    prefix="/api",
    tags=["medical-records"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    access.router,
    prefix="/api/access",
    tags=["access"],
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Care Connect Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


def _error_response(status_code: int, detail: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_code": error_code},
    )


# Global exception handlers
@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    """Map service-layer errors to HTTP responses."""
    if isinstance(exc, UnauthorizedError):
        if exc.conceal:
            # Indistinguishable from a missing resource
            return _error_response(404, exc.message, NotFoundError.error_code)
        return _error_response(403, exc.message, exc.error_code)
    if isinstance(exc, NotFoundError):
        return _error_response(404, exc.message, exc.error_code)
    if isinstance(exc, (InvalidTransitionError, AlreadyExistsError, StoreConflictError)):
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}")
        return _error_response(409, exc.message, exc.error_code)
    logger.error(f"Unmapped access control error: {type(exc).__name__}")
    return _error_response(400, exc.message, exc.error_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(500, "Internal server error", "INTERNAL_ERROR")


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return _error_response(400, str(exc), "VALIDATION_ERROR")
