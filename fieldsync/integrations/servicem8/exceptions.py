"""Custom exception classes for the ServiceM8 API client."""

from typing import Any

from fieldsync.integrations.servicem8.constants import RETRYABLE_MESSAGE_MARKERS


class ServiceM8APIError(Exception):
    """Base exception for all ServiceM8 API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str = "API Error",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ServiceM8APIError.

        Args:
            message: Error message
            status_code: HTTP status code if applicable
            error: Short error label reported by the API
            details: Raw error body returned by the API
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error
        self.details = details or {}

    def __str__(self) -> str:
        if self.status_code:
            return f"ServiceM8 API Error ({self.status_code}): {self.message}"
        return f"ServiceM8 API Error: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "code": self.status_code,
            "details": self.details,
        }


class ServiceM8NotFoundError(ServiceM8APIError):
    """Exception raised when the requested object does not exist upstream (404)."""

    def __init__(
        self,
        message: str = "Object not found",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, status_code=404, error="Not Found", details=details)


class ServiceM8RateLimitError(ServiceM8APIError):
    """Exception raised for rate limit errors (429)."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message, status_code=429, error="Too Many Requests", details=details
        )


class ServiceM8TimeoutError(ServiceM8APIError):
    """Exception raised for request timeout errors."""

    def __init__(
        self,
        message: str = "Request timeout",
        timeout_duration: float | None = None,
    ) -> None:
        super().__init__(message=message, error="Timeout")
        self.timeout_duration = timeout_duration


class ServiceM8ConnectionError(ServiceM8APIError):
    """Exception raised for connection errors."""

    def __init__(
        self,
        message: str = "Network error while contacting ServiceM8",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message, error="Network Error")
        self.original_error = original_error


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether a failed request may be retried.

    Timeouts, network failures and rate limiting are transient; everything
    else (other 4xx, malformed responses) is terminal.
    """
    if isinstance(error, ServiceM8TimeoutError | ServiceM8ConnectionError | ServiceM8RateLimitError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)
