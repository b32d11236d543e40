"""
Request Signer
==============
Builds signed envelopes for outbound calls from the website to the admin panel.
"""

from typing import Any, Callable, Dict, Optional

import structlog

from ..exceptions import ConfigurationError
from .models import RequestEnvelope
from .signature import canonical_body, compute_signature, now_ms

logger = structlog.get_logger(__name__)


class RequestSigner:
    """
    Signs outbound requests with the shared service key.

    The signer holds no mutable state and is safe to share across
    concurrent requests.
    """

    def __init__(self, service_key: Optional[str], clock: Callable[[], int] = now_ms):
        self._service_key = service_key or ""
        self._clock = clock

    @property
    def configured(self) -> bool:
        return bool(self._service_key)

    def sign_envelope(self, method: str, path: str, body: Any = None) -> RequestEnvelope:
        """
        Build a signed envelope for one request.

        Args:
            method: HTTP method
            path: URL path without query string
            body: JSON-serializable body, raw bytes, or None

        Returns:
            RequestEnvelope carrying the exact body bytes that were signed

        Raises:
            ConfigurationError: if the service key is not configured
        """
        if not self._service_key:
            logger.error("service_key_not_configured", path=path)
            raise ConfigurationError("PUBLIC_SITE_SERVICE_KEY not configured")

        method = method.upper()
        body_bytes = canonical_body(body)
        timestamp = self._clock()
        signature = compute_signature(self._service_key, method, path, timestamp, body_bytes)

        return RequestEnvelope(
            method=method,
            path=path,
            timestamp=timestamp,
            body=body_bytes,
            signature=signature,
            service_key=self._service_key,
        )

    def sign(self, method: str, path: str, body: Any = None) -> Dict[str, str]:
        """Sign a request and return only the headers."""
        return self.sign_envelope(method, path, body).headers
