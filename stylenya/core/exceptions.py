"""Custom exception classes for the application."""

from typing import Any


class StylenyaError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# Run errors
class RunNotFoundError(StylenyaError):
    """Research run not found."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Research run not found: {run_id}")


class RunnerClosedError(StylenyaError):
    """Runner no longer accepts new jobs."""

    def __init__(self) -> None:
        super().__init__("Research runner is shutting down")


# External API errors
class ExternalAPIError(StylenyaError):
    """Error calling external API."""

    def __init__(self, api_name: str, message: str, status: int | None = None) -> None:
        self.api_name = api_name
        self.status = status
        super().__init__(f"{api_name} API error: {message}")


class RateLimitExceededError(ExternalAPIError):
    """Rate limit exceeded for external API."""

    is_rate_limit = True

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "Rate limit exceeded", status=429)


class APIKeyMissingError(ExternalAPIError):
    """API key not configured."""

    def __init__(self, api_name: str) -> None:
        super().__init__(api_name, "API key not configured")


# Import errors
class CsvImportError(StylenyaError):
    """Keyword CSV could not be parsed."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        super().__init__(message, details)


# Research runner errors
class PipelineTimeoutError(StylenyaError):
    """Research pipeline exceeded its time budget."""

    timeout = True

    def __init__(self, stage: str, timeout_seconds: float) -> None:
        self.stage = stage
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Research {stage} timed out after {timeout_seconds:g}s")


class RunCancelledError(StylenyaError):
    """Research run was cancelled by a user."""

    cancelled = True

    def __init__(self, message: str = "Run cancelled by user") -> None:
        super().__init__(message)
