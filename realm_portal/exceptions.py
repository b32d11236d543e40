from typing import Optional


class PortalError(Exception):
    """Base exception for the portal."""


class ConfigurationError(PortalError):
    """Raised when required configuration (the service key) is missing."""

    user_message = "Server configuration error"


class UpstreamError(PortalError):
    """Raised when the admin panel returns a failure or cannot be reached."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        raw_error: Optional[str] = None,
        path: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.raw_error = raw_error
        self.path = path
        super().__init__(f"[admin-panel] {message} (Status: {status_code})")


class ServiceUnavailableError(UpstreamError):
    """Raised when the admin panel is unreachable or returns 5xx."""
    pass


class ServiceTimeoutError(ServiceUnavailableError):
    """Raised specifically on timeouts."""
    pass


class AuthenticationError(UpstreamError):
    """Raised when the admin panel rejects our signed request (401/403)."""
    pass


class NotFoundError(UpstreamError):
    """Raised when the admin panel reports the resource is missing (404)."""
    pass
