"""Custom exceptions for queryflow.

This module defines library-specific exceptions with structured error
codes and metadata for consistent error handling across timelines,
queryables and batches.

Exception Hierarchy:
- QueryflowError (base)
  ├── ValidationError
  │   ├── InvalidObserverError
  │   └── UnknownMomentError
  ├── UnhandledErrorEvent
  ├── BatchError
  │   ├── BatchProcessingError
  │   └── BatchStateError
  └── HttpRequestError

Usage:
    try:
        users = await graph_users.execute()
    except HttpRequestError as e:
        if e.retryable:
            ...
    except BatchProcessingError as e:
        log.error(f"Batch failed: {e.error_code} {e.error_message}")
        raise

Attributes:
    code: Machine-readable error code (e.g., "BATCH_PROCESSING_ERROR")
    message: Human-readable error message
    details: Additional context for debugging
    retryable: Whether the operation can be retried
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class QueryflowError(Exception):
    """Base exception for queryflow errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Additional context for debugging
        retryable: Whether the operation can be retried
        timestamp: When the error occurred
    """

    code: str = "QUERYFLOW_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        """Initialize error with optional message and details."""
        self.message = message or self.message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
                "timestamp": self.timestamp.isoformat(),
            }
        }

    def __str__(self) -> str:
        """String representation with code."""
        return f"[{self.code}] {self.message}"


class ValidationError(QueryflowError):
    """Base exception for validation errors."""

    code = "VALIDATION_ERROR"
    message = "Validation failed"


class InvalidObserverError(ValidationError):
    """Raised when a non-callable value is registered as an observer."""

    code = "INVALID_OBSERVER"
    message = "Observers must be callable"

    def __init__(self, moment: str, observer: Any) -> None:
        """Initialize invalid observer error."""
        self.moment = moment
        self.observer = observer
        super().__init__(
            message=f"Observers must be callable, got {type(observer).__name__} for moment '{moment}'",
            details={"moment": moment, "observer_type": type(observer).__name__},
        )


class UnknownMomentError(ValidationError):
    """Raised when a moment name is not declared on the timeline.

    Attributes:
        moment: The requested moment name
        valid_moments: Moment names the timeline declares
    """

    code = "UNKNOWN_MOMENT"
    message = "Unknown moment"

    def __init__(self, moment: str, valid_moments: list[str]) -> None:
        """Initialize unknown moment error."""
        self.moment = moment
        self.valid_moments = valid_moments
        super().__init__(
            message=f"Moment '{moment}' is not declared. Valid moments: {valid_moments}",
            details={"moment": moment, "valid_moments": valid_moments},
        )


class UnhandledErrorEvent(QueryflowError):
    """Raised when the error moment is invoked with no error observers.

    The original argument is kept on ``error``; when it is an exception it is
    also chained as ``__cause__`` so tracebacks show the root failure.
    """

    code = "UNHANDLED_ERROR"
    message = "Unhandled error"

    def __init__(self, error: Any) -> None:
        """Initialize unhandled error event."""
        self.error = error
        super().__init__(
            message=f"Unhandled Exception: {error}",
            details={"error": str(error), "error_type": type(error).__name__},
        )
        if isinstance(error, BaseException):
            self.__cause__ = error


class BatchError(QueryflowError):
    """Base exception for batch errors."""

    code = "BATCH_ERROR"
    message = "Batch failed"


class BatchProcessingError(BatchError):
    """Raised when an aggregate batch response cannot be processed.

    Covers both a top-level ``error`` object returned by the server and a
    fragment the server never answered.

    Attributes:
        error_code: Server supplied error code (if any)
        error_message: Server supplied error message
        inner_error: Server supplied inner error payload
    """

    code = "BATCH_PROCESSING_ERROR"
    message = "Error processing batch"

    def __init__(
        self,
        error_code: str | None,
        error_message: str,
        inner_error: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize batch processing error."""
        self.error_code = error_code
        self.error_message = error_message
        self.inner_error = inner_error
        full_details: dict[str, Any] = {
            "error_code": error_code,
            "error_message": error_message,
        }
        if inner_error:
            full_details["inner_error"] = inner_error
        if details:
            full_details.update(details)
        super().__init__(
            message=f"Error processing batch: ({error_code}) {error_message}",
            details=full_details,
        )


class BatchStateError(BatchError):
    """Raised when a batch is used after its flush has begun."""

    code = "BATCH_STATE_ERROR"
    message = "Batch is no longer accepting requests"

    def __init__(self, batch_id: str, state: str, operation: str) -> None:
        """Initialize batch state error."""
        self.batch_id = batch_id
        self.state = state
        self.operation = operation
        super().__init__(
            message=f"Cannot {operation} batch {batch_id} in state '{state}'",
            details={"batch_id": batch_id, "state": state, "operation": operation},
        )


class HttpRequestError(QueryflowError):
    """Raised when a request completes with a non-success status.

    Attributes:
        status: HTTP status code
        status_text: Reason phrase
        body: Response body text
        headers: Response headers
    """

    code = "HTTP_REQUEST_ERROR"
    message = "Request failed"

    def __init__(
        self,
        status: int,
        status_text: str = "",
        body: str = "",
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize HTTP request error."""
        self.status = status
        self.status_text = status_text
        self.body = body
        self.headers = headers or {}
        super().__init__(
            message=f"Error making HttpClient request in queryable [{status}] {status_text} ::> {body}",
            details={"status": status, "status_text": status_text, "body": body},
            retryable=status in RETRYABLE_STATUSES,
        )

    @classmethod
    def from_response(cls, response: httpx.Response) -> HttpRequestError:
        """Build the error from a completed response."""
        return cls(
            status=response.status_code,
            status_text=response.reason_phrase,
            body=response.text,
            headers=dict(response.headers),
        )


__all__ = [
    "QueryflowError",
    "ValidationError",
    "InvalidObserverError",
    "UnknownMomentError",
    "UnhandledErrorEvent",
    "BatchError",
    "BatchProcessingError",
    "BatchStateError",
    "HttpRequestError",
    "RETRYABLE_STATUSES",
]
