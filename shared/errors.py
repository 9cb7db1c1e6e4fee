"""
Shared error handling for the Cache Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class CacheLayerException(Exception):
    """Base exception for Cache Access Layer services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(CacheLayerException):
    """A required parameter is missing."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StoreConnectionError(CacheLayerException):
    """The backing store is unreachable or the connection dropped."""

    status_code = 503

    def __init__(self, message: str = "Backing store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_CONNECTION_ERROR", message, details)


class StoreCommandError(CacheLayerException):
    """The backing store rejected a command (wrong type, non-integer value, bad expiry)."""

    def __init__(self, message: str = "Backing store rejected command", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_COMMAND_ERROR", message, details)

