"""FastAPI application entry point."""
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from wellness.config import settings
from wellness.exceptions import (
    BookingConflictError,
    BookingNotFoundError,
    CreditValidationError,
    InsufficientCreditError,
    IntervalValidationError,
    InvalidBookingStateError,
)
from wellness.middleware.logging import LoggingMiddleware, setup_logging
from wellness.middleware.metrics import MetricsMiddleware
from wellness.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info("application_starting", env=settings.app_env)
    yield
    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI application
app = FastAPI(
    title="Wellness Booking Core",
    description="Appointment credits and resource booking for wellness clinics",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add metrics and request logging middleware
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _request_id(request: Request) -> str:
    return (
        request.headers.get("x-request-id")
        or structlog.contextvars.get_contextvars().get("request_id")
        or f"req_{uuid.uuid4().hex[:12]}"
    )


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    code: str,
    details: Optional[list[dict]] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build the standard error body shared by all domain exception handlers."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details if details is not None else [{"code": code, "message": message}],
            "remediation": REMEDIATION_HINTS.get(code),
            "request_id": _request_id(request),
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
        headers=headers,
    )


# Exception handlers with structured error responses
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with detailed field-level validation errors.
    """
    request_id = _request_id(request)

    # Map Pydantic error types to our error codes
    code_mapping = {
        "uuid_parsing": ErrorCode.INVALID_UUID,
        "uuid_type": ErrorCode.INVALID_UUID,
        "enum": ErrorCode.INVALID_ENUM_VALUE,
        "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        "int_parsing": ErrorCode.INVALID_AMOUNT,
        "greater_than": ErrorCode.INVALID_AMOUNT,
        "greater_than_equal": ErrorCode.INVALID_AMOUNT,
    }

    details = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        details.append(
            ErrorDetail(
                code=code_mapping.get(error["type"], "validation_error"),
                message=error["msg"],
                field=field_path,
                value=error.get("input"),
            ).model_dump(mode="json")
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_count=len(details),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "details": details,
            "remediation": "Check the API documentation for correct request format at /docs",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "documentation_url": f"{request.base_url}docs",
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap authentication and authorization failures in the standard error body."""
    error, code = {
        status.HTTP_401_UNAUTHORIZED: ("Unauthorized", ErrorCode.AUTHENTICATION_REQUIRED),
        status.HTTP_403_FORBIDDEN: ("Forbidden", ErrorCode.INSUFFICIENT_PERMISSIONS),
    }.get(exc.status_code, ("HTTPError", "http_error"))

    return _error_response(
        request,
        exc.status_code,
        error,
        str(exc.detail),
        code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(InsufficientCreditError)
async def insufficient_credit_handler(request: Request, exc: InsufficientCreditError) -> JSONResponse:
    """Returns 402 when a redemption exceeds the available balance."""
    logger.info(
        "insufficient_credit",
        path=request.url.path,
        requested=exc.requested,
        available=exc.available,
    )
    return _error_response(
        request,
        status.HTTP_402_PAYMENT_REQUIRED,
        "InsufficientCredit",
        str(exc),
        ErrorCode.INSUFFICIENT_CREDIT,
    )


@app.exception_handler(BookingConflictError)
async def booking_conflict_handler(request: Request, exc: BookingConflictError) -> JSONResponse:
    """Returns 409 listing the bookings that occupy the requested interval."""
    details = [
        {
            "code": ErrorCode.BOOKING_CONFLICT,
            "message": f"{c.resource_id} {c.booking_date} {c.start_time:%H:%M}-{c.end_time:%H:%M}",
            "field": "booking_id",
            "value": str(c.id),
        }
        for c in exc.conflicts
    ]
    return _error_response(
        request,
        status.HTTP_409_CONFLICT,
        "Conflict",
        str(exc),
        ErrorCode.BOOKING_CONFLICT,
        details=details or None,
    )


@app.exception_handler(BookingNotFoundError)
async def booking_not_found_handler(request: Request, exc: BookingNotFoundError) -> JSONResponse:
    """Returns 404 for unknown bookings."""
    return _error_response(
        request,
        status.HTTP_404_NOT_FOUND,
        "NotFound",
        str(exc),
        ErrorCode.BOOKING_NOT_FOUND,
    )


@app.exception_handler(CreditValidationError)
@app.exception_handler(IntervalValidationError)
@app.exception_handler(InvalidBookingStateError)
async def domain_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Returns 400 for inputs the domain rejects after schema validation."""
    code = {
        CreditValidationError: ErrorCode.INVALID_AMOUNT,
        IntervalValidationError: ErrorCode.INVALID_INTERVAL,
        InvalidBookingStateError: ErrorCode.INVALID_STATE_TRANSITION,
    }.get(type(exc), "validation_error")

    logger.warning(
        "domain_validation_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "BadRequest", str(exc), code)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable for database connection issues.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        "A database error occurred",
        ErrorCode.DATABASE_ERROR,
        details=[{"code": ErrorCode.DATABASE_ERROR, "message": error_message}],
        headers={"Retry-After": "30"},  # Suggest retry after 30 seconds
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs full stack trace for debugging but returns safe error message to client.
    """
    request_id = _request_id(request)

    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
            "details": [
                {
                    "code": ErrorCode.INTERNAL_ERROR,
                    "message": str(exc) if settings.debug else "Internal server error",
                }
            ],
            "remediation": "Please contact support with the request ID",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "documentation_url": f"{request.base_url}docs",
        },
    )


# Root endpoint
@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Wellness Booking Core",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from wellness.api.v1 import bookings, credits, health  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(credits.router, prefix="/v1", tags=["Credits"])
app.include_router(bookings.router, prefix="/v1", tags=["Bookings"])
