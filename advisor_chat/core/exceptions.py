"""
Custom exception hierarchy for proper error categorization and HTTP status mapping.

The chat endpoint reports every failure as a JSON body ``{"error": message}``:
- Client errors (400): the request itself is malformed or unsupported
- Server errors (500): missing provider credentials, provider failures,
  exhausted request deadline

Usage:
    from advisor_chat.core.exceptions import ConfigurationError

    # Missing credential -> 500, detected before any provider call
    raise ConfigurationError("XAI API key not configured", credential="xai_api_key")
"""

from typing import Any


class AppError(Exception):
    """
    Base application error with HTTP status mapping.

    All custom exceptions inherit from this to enable consistent error handling.
    """

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(self, message: str, **context: Any):
        """
        Initialize error with message and optional context.

        Args:
            message: Human-readable error description
            **context: Additional key-value pairs for logging (e.g., variant, branch)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for structured logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            **self.context,
        }

    def to_response_body(self) -> dict[str, str]:
        """Wire body returned to the caller."""
        return {"error": self.message}


# ===== 400-level: Client Errors =====


class ValidationError(AppError):
    """Request is malformed or asks for an unsupported combination."""

    status_code = 400
    error_type = "validation_error"


# ===== 500-level: Server Errors =====


class ConfigurationError(AppError):
    """
    Application misconfigured (missing credential, unknown model id).

    Detected before any external call and never retried.
    """

    status_code = 500
    error_type = "configuration_error"


class ExternalServiceError(AppError):
    """
    External lookup (market data, history search) unavailable or returned error.

    Context lookups catch this and degrade; it only reaches the caller when
    raised outside the context assembly stage.
    """

    status_code = 500
    error_type = "external_service_error"

    def __init__(self, message: str, service: str, **context: Any):
        """
        Initialize with service name for easier debugging.

        Args:
            message: Error description
            service: Service identifier (e.g., "alpha_vantage", "history_search")
            **context: Additional context (e.g., symbol, status_code)
        """
        super().__init__(message, service=service, **context)


class ProviderInvocationError(AppError):
    """LLM provider call failed after configuration checks passed (not retried)."""

    status_code = 500
    error_type = "provider_invocation_error"


class RequestTimeoutError(AppError):
    """The request deadline expired while waiting on a suspending operation."""

    status_code = 500
    error_type = "request_timeout"
