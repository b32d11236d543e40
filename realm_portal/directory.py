"""
User Directory Interface
========================
The hosted identity provider, consumed as a black box.

Sign-up, sign-in, MFA and session issuance live in the provider. The portal
only needs to resolve a bearer token to a user and to delete a user.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable


class DirectoryError(Exception):
    """Raised by a directory implementation when an operation fails."""


@dataclass(frozen=True)
class DirectoryUser:
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


@runtime_checkable
class UserDirectory(Protocol):
    async def get_user(self, access_token: str) -> Optional[DirectoryUser]:
        """Resolve an access token; None when the token is invalid or expired."""
        ...

    async def delete_user(self, user_id: str) -> None:
        """Delete the website user. Raises DirectoryError on failure."""
        ...
