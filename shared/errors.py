"""
Shared error handling for the Flag Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    message: str


class FlagGatewayException(Exception):
    """Base exception for Flag Gateway services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.headers: Dict[str, str] = {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(message=self.message)


class ConfigurationError(FlagGatewayException):
    """Missing or inconsistent configuration; fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ValidationError(FlagGatewayException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class RateLimitError(FlagGatewayException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded.",
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__("RATE_LIMIT_ERROR", message, details)
        self.headers = headers or {}


class OriginError(FlagGatewayException):
    """Base class for failures resolving a flag at the origin."""


class OriginNotFound(OriginError):
    """The origin reports that the requested flag does not exist."""

    status_code = 404

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        self.key = key
        super().__init__("ORIGIN_NOT_FOUND", f"No flag found for country '{key}'.", details)


class OriginRejected(OriginError):
    """The origin refused the signed request (bad credentials or signature)."""

    def __init__(self, message: str = "Origin rejected the signed request", details: Optional[Dict[str, Any]] = None):
        super().__init__("ORIGIN_REJECTED", message, details)


class OriginUnavailable(OriginError):
    """Transient origin failure: network error, timeout, 5xx or throttling."""

    def __init__(self, message: str = "Origin unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("ORIGIN_UNAVAILABLE", message, details)
