"""
Signature Functions
===================
HMAC computation shared by the signer and the verifier.
"""

import hashlib
import hmac
import json
import secrets
import time
from typing import Any, Union

SIGNATURE_ALGORITHM = "sha256"


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def canonical_body(body: Any) -> bytes:
    """
    Serialize a request body the way it is signed and sent.

    Compact separators, insertion order, UTF-8. ``None`` is the empty body.
    """
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def signing_payload(method: str, path: str, timestamp: Union[int, str], body: bytes) -> bytes:
    """Build ``METHOD:path:timestamp:body`` as bytes."""
    prefix = f"{method.upper()}:{path}:{timestamp}:".encode("utf-8")
    return prefix + body


def compute_signature(
    secret: Union[str, bytes],
    method: str,
    path: str,
    timestamp: Union[int, str],
    body: bytes,
) -> str:
    """
    Compute HMAC-SHA256 signature for a request to the admin panel.

    The signature covers:
    - HTTP method
    - Request path (no query string)
    - Timestamp (epoch milliseconds)
    - Raw body bytes

    Args:
        secret: Shared service key
        method: HTTP method (GET, POST, etc.)
        path: Request path (e.g., /api/public/account/create)
        timestamp: Epoch milliseconds
        body: Body bytes exactly as transmitted

    Returns:
        Lowercase hex-encoded HMAC-SHA256 signature
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return hmac.new(
        key,
        signing_payload(method, path, timestamp, body),
        hashlib.sha256,
    ).hexdigest()


def constant_time_equals(a: bytes, b: bytes) -> bool:
    """Constant-time byte comparison. Differing lengths compare unequal."""
    return hmac.compare_digest(a, b)


def generate_service_key(length: int = 32) -> str:
    """Generate a cryptographically secure service key."""
    return secrets.token_hex(length)


if __name__ == "__main__":
    print(f"PUBLIC_SITE_SERVICE_KEY={generate_service_key()}")
