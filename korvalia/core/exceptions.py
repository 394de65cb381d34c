"""Custom exception classes for the application."""
from typing import Any, Optional


class AppException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class NotFoundError(AppException):
    """Resource not found."""
    pass


class EmblematicError(AppException):
    """Base class for every failure talking to the Emblematic CRM."""
    pass


class NotConfiguredError(EmblematicError):
    """No Emblematic token configured: raised before any network call."""
    pass


class UnauthorizedError(EmblematicError):
    """Emblematic rejected the bearer token (HTTP 401)."""
    pass


class RateLimitedError(EmblematicError):
    """Emblematic is throttling us (HTTP 429)."""
    pass


class UpstreamError(EmblematicError):
    """Any other upstream failure: non-2xx status, transport error or invalid JSON."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        self.status_code = status_code
        super().__init__(message, detail)


class UpstreamTimeoutError(UpstreamError):
    """The upstream request timed out."""
    pass
