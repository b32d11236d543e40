"""
Signature Verifier
==================
Validates inbound signed requests: service key, freshness, payload integrity.

This is the receiving side of the contract. The website produces envelopes
that this verifier accepts; the admin panel runs the same checks.
"""

import re
from typing import Callable, Mapping, Optional, Union

import structlog

from ..config import FRESHNESS_WINDOW_MS
from ..exceptions import ConfigurationError
from ..metrics import record_verification
from .headers import read_signed_headers
from .models import VALID, InvalidReason, VerificationOutcome
from .signature import compute_signature, constant_time_equals, now_ms

logger = structlog.get_logger(__name__)

_TIMESTAMP_RE = re.compile(r"-?\d{1,18}")
_SIGNATURE_RE = re.compile(r"[0-9a-f]+")
_SIGNATURE_BYTES = 32  # SHA-256 digest size


class SignatureVerifier:
    """
    Verifies signed requests against the configured service key.

    Checks run in a fixed order and each one short-circuits:
    1. service key (constant-time)
    2. timestamp freshness
    3. HMAC signature over the raw body (constant-time)

    Mismatched or malformed input is a normal outcome, never an exception.
    """

    def __init__(
        self,
        service_key: Optional[str],
        clock: Callable[[], int] = now_ms,
        freshness_window_ms: int = FRESHNESS_WINDOW_MS,
    ):
        if not service_key:
            logger.error("verifier_service_key_not_configured")
            raise ConfigurationError("PUBLIC_SITE_SERVICE_KEY not configured")
        self._secret = service_key.encode("utf-8")
        self._clock = clock
        self.freshness_window_ms = freshness_window_ms

    def verify(
        self,
        method: str,
        path: str,
        raw_body: Union[bytes, str, None],
        timestamp: Optional[str],
        signature: Optional[str],
        presented_key: Optional[str],
    ) -> VerificationOutcome:
        """
        Verify one request.

        Args:
            method: HTTP method as received
            path: Request path as received
            raw_body: Body bytes exactly as received (never a re-serialized copy)
            timestamp: X-Timestamp header value
            signature: X-Signature header value
            presented_key: X-Service-Key header value

        Returns:
            VerificationOutcome
        """
        outcome = self._verify(method, path, raw_body, timestamp, signature, presented_key)
        record_verification("valid" if outcome.valid else outcome.reason.value)
        if not outcome.valid:
            logger.warning(
                "signature_verification_failed",
                reason=outcome.reason.value,
                method=method,
                path=path,
            )
        return outcome

    def verify_headers(
        self,
        method: str,
        path: str,
        raw_body: Union[bytes, str, None],
        headers: Mapping[str, str],
    ) -> VerificationOutcome:
        """Verify using the X-Timestamp, X-Signature and X-Service-Key headers."""
        timestamp, signature, presented_key = read_signed_headers(headers)
        return self.verify(method, path, raw_body, timestamp, signature, presented_key)

    def _verify(self, method, path, raw_body, timestamp, signature, presented_key) -> VerificationOutcome:
        presented = (presented_key or "").encode("utf-8")
        if not constant_time_equals(presented, self._secret):
            return VerificationOutcome.invalid(InvalidReason.BAD_KEY)

        if not isinstance(timestamp, str) or not _TIMESTAMP_RE.fullmatch(timestamp.strip()):
            return VerificationOutcome.invalid(InvalidReason.MALFORMED)
        request_time = int(timestamp.strip())
        if abs(self._clock() - request_time) > self.freshness_window_ms:
            return VerificationOutcome.invalid(InvalidReason.EXPIRED)

        if not isinstance(signature, str) or not _SIGNATURE_RE.fullmatch(signature):
            return VerificationOutcome.invalid(InvalidReason.MALFORMED)
        try:
            provided = bytes.fromhex(signature)
        except ValueError:
            return VerificationOutcome.invalid(InvalidReason.MALFORMED)

        if raw_body is None:
            body = b""
        elif isinstance(raw_body, str):
            body = raw_body.encode("utf-8")
        else:
            body = bytes(raw_body)

        expected = bytes.fromhex(compute_signature(self._secret, method, path, timestamp.strip(), body))
        if len(provided) != _SIGNATURE_BYTES or not constant_time_equals(provided, expected):
            return VerificationOutcome.invalid(InvalidReason.BAD_SIGNATURE)

        return VALID
