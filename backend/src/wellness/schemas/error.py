"""Structured error response schemas."""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    This provides consistent error responses across the API with:
    - Machine-readable error codes
    - Human-readable messages
    - Remediation hints
    - Request tracing information
    """

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'InsufficientCredit', 'Conflict')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors and conflicts)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "InsufficientCredit",
                "message": "Insufficient credit: requested 60000, available 50000",
                "details": [
                    {
                        "code": "insufficient_credit",
                        "message": "Insufficient credit: requested 60000, available 50000",
                    }
                ],
                "remediation": "Reduce the amount of credit applied or pay the difference with another method.",
                "request_id": "req_1234567890",
                "timestamp": "2025-09-15T10:30:00Z",
            }
        }
    )


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400, 422)
    INVALID_AMOUNT = "invalid_amount"
    INVALID_INTERVAL = "invalid_interval"
    INVALID_UUID = "invalid_uuid"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_ENUM_VALUE = "invalid_enum_value"

    # Business logic errors
    INSUFFICIENT_CREDIT = "insufficient_credit"
    BOOKING_CONFLICT = "booking_conflict"
    INVALID_STATE_TRANSITION = "invalid_state_transition"

    # Not found errors (404)
    BOOKING_NOT_FOUND = "booking_not_found"

    # Authentication errors (401)
    AUTHENTICATION_REQUIRED = "authentication_required"

    # Authorization errors (403)
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"

    # External service errors (503)
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVALID_AMOUNT: "Provide a non-negative amount in minor currency units (e.g., 100000)",
    ErrorCode.INVALID_INTERVAL: "Provide a start time earlier than the end time, within one day",
    ErrorCode.INVALID_UUID: "Provide a valid UUID identifier",
    ErrorCode.INSUFFICIENT_CREDIT: "Reduce the amount of credit applied or pay the difference with another method.",
    ErrorCode.BOOKING_CONFLICT: "Choose another time or another resource; the listed slots are already booked.",
    ErrorCode.BOOKING_NOT_FOUND: "Verify the booking ID is correct and the booking exists",
    ErrorCode.INVALID_STATE_TRANSITION: "Only scheduled, confirmed or in-progress bookings can be changed",
    ErrorCode.AUTHENTICATION_REQUIRED: "Send a valid bearer token in the Authorization header",
    ErrorCode.INSUFFICIENT_PERMISSIONS: "Use an account whose role allows this operation, or act on your own records",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
