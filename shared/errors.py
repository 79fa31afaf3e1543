"""
Shared error handling for the Harness MCP server.

Every exception carries the HTTP status it maps to and a message that is safe
to return to a caller. Anything diagnostic belongs in ``details``, which is
logged server side and never rendered by the gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class HarnessException(Exception):
    """Base exception for Harness services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, include_details: bool = True) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details if include_details else {},
        )


class RateLimitExceeded(HarnessException):
    """A client exceeded the request ceiling of a rate-limit tier."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.",
                 details: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None):
        self.headers = headers or {}
        super().__init__("RATE_LIMIT_ERROR", message, details)


class AuthMissingCredential(HarnessException):
    """No API key was presented while one is required."""

    status_code = 401

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthInvalidCredential(HarnessException):
    """The presented API key does not match (length or content)."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class PayloadTooLarge(HarnessException):
    """Request body exceeds the configured ceiling."""

    status_code = 413

    def __init__(self, message: str = "Request body too large", details: Optional[Dict[str, Any]] = None):
        super().__init__("PAYLOAD_TOO_LARGE", message, details)


class ValidationError(HarnessException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class AgentNotFound(HarnessException):
    """Requested agent is not part of the registry."""

    status_code = 404

    def __init__(self, agent_name: str, details: Optional[Dict[str, Any]] = None):
        self.agent_name = agent_name
        super().__init__("AGENT_NOT_FOUND", f"Agent '{agent_name}' is not defined in HARNESS methodology", details)


class ExternalServiceError(HarnessException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class ConfigurationMissing(UserWarning):
    """No shared secret configured; the API is open to every caller."""
