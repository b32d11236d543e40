"""
Header Functions
=================
Header names and helpers for signed admin-panel requests.
"""

from typing import Dict, Mapping, Optional, Tuple

SERVICE_KEY_HEADER = "X-Service-Key"
TIMESTAMP_HEADER = "X-Timestamp"
SIGNATURE_HEADER = "X-Signature"
CONTENT_TYPE = "application/json"


def build_headers(envelope) -> Dict[str, str]:
    """
    Create the header set for a signed envelope.

    Args:
        envelope: RequestEnvelope produced by the signer

    Returns:
        Dictionary of headers to include in the request
    """
    return {
        SERVICE_KEY_HEADER: envelope.service_key,
        TIMESTAMP_HEADER: str(envelope.timestamp),
        SIGNATURE_HEADER: envelope.signature,
        "Content-Type": CONTENT_TYPE,
    }


def read_signed_headers(
    headers: Mapping[str, str],
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Pull (timestamp, signature, service key) out of request headers.

    Works with case-insensitive mappings (Starlette, httpx) and plain dicts.
    Missing headers come back as None.
    """
    def _get(name: str) -> Optional[str]:
        value = headers.get(name)
        if value is None:
            value = headers.get(name.lower())
        return value

    return _get(TIMESTAMP_HEADER), _get(SIGNATURE_HEADER), _get(SERVICE_KEY_HEADER)
