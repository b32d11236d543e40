"""
User-Facing Error Sanitizer
===========================
Maps raw admin-panel error strings to a small set of safe messages before
they reach the browser. Technical details go to the operator log only.

CRITICAL: Never return an upstream-originated substring to end users.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, Optional, Sequence

import structlog
from fastapi import HTTPException

logger = structlog.get_logger(__name__)

SERVICE_UNAVAILABLE = "Service temporarily unavailable"
CONFIGURATION_ERROR = "Server configuration error"
UNAUTHORIZED = "Unauthorized"


@dataclass(frozen=True)
class SanitizeRule:
    """One (pattern, safe message) pair. Patterns match case-insensitively."""
    pattern: str
    message: str

    def __post_init__(self):
        object.__setattr__(self, "_regex", re.compile(self.pattern, re.IGNORECASE))

    def matches(self, raw_error: str) -> bool:
        return self._regex.search(raw_error) is not None


# Order matters: first match wins
DEFAULT_RULES: Sequence[SanitizeRule] = (
    SanitizeRule(r"already exist", "Username is already taken"),
    SanitizeRule(r"not found|not exist", "Account not found"),
    SanitizeRule(r"invalid.*password", "Invalid credentials"),
    SanitizeRule(r"invalid.*username", "Invalid username format"),
    SanitizeRule(r"server.*unavailable|ECONNREFUSED|connection refused", SERVICE_UNAVAILABLE),
    SanitizeRule(r"syntax", "Invalid input format"),
)


class ErrorSanitizer:
    """Evaluates an ordered rule table against raw upstream errors."""

    def __init__(self, rules: Sequence[SanitizeRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    @property
    def safe_messages(self) -> FrozenSet[str]:
        """Every message a rule can produce (callers add their own fallbacks)."""
        return frozenset(rule.message for rule in self.rules)

    def sanitize(self, raw_error: Optional[str], fallback: str) -> str:
        """
        Map a raw error to a safe message.

        Args:
            raw_error: Error string from the admin panel, may be None
            fallback: Message to return when nothing matches

        Returns:
            A rule message or ``fallback``; never ``raw_error`` itself
        """
        if not raw_error:
            logger.debug("admin_error_missing", fallback=fallback)
            return fallback

        for rule in self.rules:
            if rule.matches(raw_error):
                return rule.message

        logger.error("admin_error_sanitized", raw_error=raw_error, fallback=fallback)
        return fallback


_default_sanitizer = ErrorSanitizer()


def sanitize(raw_error: Optional[str], fallback: str) -> str:
    """Sanitize with the default rule table."""
    return _default_sanitizer.sanitize(raw_error, fallback)


def create_user_error(
    internal_code: str,
    message: str,
    log_message: Optional[str] = None,
    status_code: int = 503,
) -> HTTPException:
    """
    Create a user-friendly HTTPException.

    Args:
        internal_code: Internal code for debugging (logged, not shown to user)
        message: Safe message shown to the user
        log_message: Technical message for logs
        status_code: HTTP status code

    Returns:
        HTTPException with a generic body
    """
    if log_message:
        logger.warning("user_error", code=internal_code, detail=log_message)

    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": message},
    )


class UserErrors:
    """Standard user error factory methods."""

    @staticmethod
    def config_error(log_detail: Optional[str] = None) -> HTTPException:
        """Service key missing or similar."""
        return create_user_error("CONFIG_ERROR", CONFIGURATION_ERROR, log_detail, status_code=503)

    @staticmethod
    def unauthorized(log_detail: Optional[str] = None) -> HTTPException:
        """Signed request rejected, or missing bearer token."""
        return create_user_error("UNAUTHORIZED", UNAUTHORIZED, log_detail, status_code=401)

    @staticmethod
    def upstream_error(message: str, log_detail: Optional[str] = None) -> HTTPException:
        """Admin panel failure, already sanitized."""
        return create_user_error("UPSTREAM_ERROR", message, log_detail, status_code=502)
