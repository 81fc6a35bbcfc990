"""
Shared error handling for AFKMate Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from afkmate_shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AfkmateException(Exception):
    """Base exception for Access Layer services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AfkmateException):
    """Request validation errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(AfkmateException):
    """Deployment misconfiguration; reported as temporarily unavailable, never as bad input."""

    status_code = 503

    def __init__(self, message: str = "Service misconfigured", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ExternalServiceError(AfkmateException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class BackendUnavailableError(AfkmateException):
    """Distributed counting store unreachable. Recovered by local fallback."""

    status_code = 503

    def __init__(self, backend: str, message: str = "Backend unavailable", details: Optional[Dict[str, Any]] = None):
        self.backend = backend
        super().__init__("BACKEND_UNAVAILABLE", f"{backend}: {message}", details)
