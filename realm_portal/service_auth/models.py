"""
Service Auth Models
===================
Data models and enums for signed admin-panel requests.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .headers import build_headers


class InvalidReason(str, Enum):
    """Why a signed request was rejected. Operator-facing only."""
    BAD_KEY = "bad_key"
    EXPIRED = "expired"
    BAD_SIGNATURE = "bad_signature"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of verifying a signed request: valid, or invalid with a reason."""
    valid: bool
    reason: Optional[InvalidReason] = None

    @classmethod
    def ok(cls) -> "VerificationOutcome":
        return cls(valid=True)

    @classmethod
    def invalid(cls, reason: InvalidReason) -> "VerificationOutcome":
        return cls(valid=False, reason=reason)

    def __bool__(self) -> bool:
        return self.valid


VALID = VerificationOutcome.ok()


@dataclass(frozen=True)
class RequestEnvelope:
    """A single signed outbound request. Built per call, used once."""
    method: str
    path: str
    timestamp: int
    body: bytes
    signature: str
    service_key: str = field(repr=False, default="")

    @property
    def headers(self) -> Dict[str, str]:
        return build_headers(self)
