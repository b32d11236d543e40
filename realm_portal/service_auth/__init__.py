"""
Service Authentication Module
=============================
Signed, tamper-evident requests between the website and the admin panel.
"""

from .headers import (
    SERVICE_KEY_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    build_headers,
    read_signed_headers,
)
from .middleware import SignatureGuardMiddleware
from .models import InvalidReason, RequestEnvelope, VerificationOutcome
from .signature import (
    SIGNATURE_ALGORITHM,
    canonical_body,
    compute_signature,
    constant_time_equals,
    generate_service_key,
    now_ms,
)
from .signer import RequestSigner
from .verifier import SignatureVerifier

__all__ = [
    # Models
    "InvalidReason",
    "RequestEnvelope",
    "VerificationOutcome",
    # Signature
    "SIGNATURE_ALGORITHM",
    "canonical_body",
    "compute_signature",
    "constant_time_equals",
    "generate_service_key",
    "now_ms",
    # Headers
    "SERVICE_KEY_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "build_headers",
    "read_signed_headers",
    # Signer / verifier
    "RequestSigner",
    "SignatureVerifier",
    "SignatureGuardMiddleware",
]
