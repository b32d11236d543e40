"""
Realm Portal Core
=================
Website-side core for the game portal: signed calls to the admin panel,
timing-safe account operations and error sanitization.
"""

__version__ = "0.1.0"

# Configuration
from realm_portal.config import PortalConfig

# Errors
from realm_portal.exceptions import (
    PortalError,
    ConfigurationError,
    UpstreamError,
    ServiceUnavailableError,
    ServiceTimeoutError,
    AuthenticationError,
    NotFoundError,
)

# Service Auth
from realm_portal.service_auth import (
    RequestSigner,
    SignatureVerifier,
    SignatureGuardMiddleware,
    RequestEnvelope,
    VerificationOutcome,
    InvalidReason,
)

# Timing gate
from realm_portal.timing_gate import TimingSafeGate, timing_safe

# Sanitizer
from realm_portal.sanitizer import ErrorSanitizer, SanitizeRule, sanitize

# Admin Client
from realm_portal.admin_client import AdminClient

__all__ = [
    # Configuration
    "PortalConfig",
    # Errors
    "PortalError",
    "ConfigurationError",
    "UpstreamError",
    "ServiceUnavailableError",
    "ServiceTimeoutError",
    "AuthenticationError",
    "NotFoundError",
    # Service Auth
    "RequestSigner",
    "SignatureVerifier",
    "SignatureGuardMiddleware",
    "RequestEnvelope",
    "VerificationOutcome",
    "InvalidReason",
    # Timing gate
    "TimingSafeGate",
    "timing_safe",
    # Sanitizer
    "ErrorSanitizer",
    "SanitizeRule",
    "sanitize",
    # Admin Client
    "AdminClient",
]
