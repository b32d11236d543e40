"""
Roles and Tester Access
=======================
Portal roles (``user``, ``tester``, ``admin``) and the tester-request
workflow: a user asks for tester access, an admin approves or denies it, and
approval grants the ``tester`` role with a list of allowed environments.

Users without a role row are given the default ``user`` role on first
lookup.
"""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from pydantic import BaseModel

from .directory import DirectoryUser, UserDirectory
from .models import Role, TesterRequest, TesterRequestStatus, UserRole
from .store import TesterRequestStore, UserRoleStore

logger = structlog.get_logger(__name__)

DEFAULT_TESTER_ENVS = ["dev"]

UNAUTHORIZED = "Unauthorized"
ADMIN_REQUIRED = "Admin access required"
ALREADY_ELEVATED = "You already have elevated access"
ALREADY_PENDING = "You already have a pending request"
REQUEST_NOT_FOUND = "Request not found"
INVALID_ROLE = "Invalid role. Must be: user, tester, or admin"


class RoleInfo(BaseModel):
    user_id: str
    role: Role
    allowed_envs: List[str] = []
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, user_role: UserRole) -> "RoleInfo":
        return cls(
            user_id=user_role.user_id,
            role=Role(user_role.role),
            allowed_envs=list(user_role.allowed_envs or []),
            created_at=user_role.created_at,
        )


class TesterRequestInfo(BaseModel):
    id: str
    user_id: str
    email: str
    reason: Optional[str] = None
    status: TesterRequestStatus
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_model(cls, request: TesterRequest) -> "TesterRequestInfo":
        return cls(
            id=request.id,
            user_id=request.user_id,
            email=request.email,
            reason=request.reason,
            status=TesterRequestStatus(request.status),
            reviewed_by=request.reviewed_by,
            reviewed_at=request.reviewed_at,
            created_at=request.created_at,
        )


class RoleResult(BaseModel):
    success: bool
    error: Optional[str] = None
    role: Optional[RoleInfo] = None
    users: Optional[List[RoleInfo]] = None


class TesterRequestResult(BaseModel):
    success: bool
    error: Optional[str] = None
    request: Optional[TesterRequestInfo] = None
    requests: Optional[List[TesterRequestInfo]] = None


async def _authenticate(directory: UserDirectory, access_token: Optional[str]) -> Optional[DirectoryUser]:
    if not access_token:
        return None
    return await directory.get_user(access_token)


class RoleService:
    """Role lookups and admin-only role management."""

    def __init__(self, directory: UserDirectory, store: UserRoleStore):
        self.directory = directory
        self.store = store

    async def get_role(self, user_id: str) -> UserRole:
        return await self.store.get_or_create(user_id)

    async def require_admin(self, access_token: Optional[str]) -> Tuple[Optional[DirectoryUser], Optional[str]]:
        """
        Resolve the caller and check for the ``admin`` role.

        Returns:
            (user, None) for an admin, or (None, error message)
        """
        user = await _authenticate(self.directory, access_token)
        if user is None:
            return None, UNAUTHORIZED
        user_role = await self.get_role(user.user_id)
        if user_role.role != Role.ADMIN.value:
            logger.warning("admin_access_denied", user_id=user.user_id)
            return None, ADMIN_REQUIRED
        return user, None

    async def get_my_role(self, access_token: Optional[str]) -> RoleResult:
        try:
            user = await _authenticate(self.directory, access_token)
            if user is None:
                return RoleResult(success=False, error=UNAUTHORIZED)
            return RoleResult(success=True, role=RoleInfo.from_model(await self.get_role(user.user_id)))
        except Exception:
            logger.exception("get_role_failed")
            return RoleResult(success=False, error="Failed to get user role")

    async def update_user_role(
        self,
        admin_token: Optional[str],
        target_user_id: str,
        role: str,
        allowed_envs: Optional[List[str]] = None,
    ) -> RoleResult:
        try:
            new_role = Role(role)
        except ValueError:
            return RoleResult(success=False, error=INVALID_ROLE)
        try:
            admin, error = await self.require_admin(admin_token)
            if error:
                return RoleResult(success=False, error=error)

            updated = await self.store.upsert(target_user_id, new_role.value, allowed_envs or [])
            logger.info("user_role_updated", admin_id=admin.user_id, user_id=target_user_id, role=new_role.value)
            return RoleResult(success=True, role=RoleInfo.from_model(updated))
        except Exception:
            logger.exception("update_user_role_failed", user_id=target_user_id)
            return RoleResult(success=False, error="Failed to update user role")

    async def list_users_with_roles(self, admin_token: Optional[str]) -> RoleResult:
        try:
            _, error = await self.require_admin(admin_token)
            if error:
                return RoleResult(success=False, error=error)
            users = await self.store.list_all()
            return RoleResult(success=True, users=[RoleInfo.from_model(u) for u in users])
        except Exception:
            logger.exception("list_user_roles_failed")
            return RoleResult(success=False, error="Failed to list users")


class TesterRequestService:
    """Submitting and reviewing tester access requests."""

    def __init__(self, roles: RoleService, store: TesterRequestStore):
        self.roles = roles
        self.store = store

    async def submit_request(self, access_token: Optional[str], reason: Optional[str] = None) -> TesterRequestResult:
        """
        Submit a request for tester access.

        Only plain users may ask. A pending request blocks a new one; a denied
        request is replaced so the user can ask again.
        """
        try:
            user = await _authenticate(self.roles.directory, access_token)
            if user is None or not user.email:
                return TesterRequestResult(success=False, error=UNAUTHORIZED)

            current = await self.roles.get_role(user.user_id)
            if current.role != Role.USER.value:
                return TesterRequestResult(success=False, error=ALREADY_ELEVATED)

            existing = await self.store.get_by_user(user.user_id)
            replace_id = None
            if existing is not None:
                if existing.status == TesterRequestStatus.PENDING.value:
                    return TesterRequestResult(success=False, error=ALREADY_PENDING)
                replace_id = existing.id

            request = await self.store.submit(user.user_id, user.email, reason, replace_id=replace_id)
            logger.info("tester_request_submitted", user_id=user.user_id, request_id=request.id)
            return TesterRequestResult(success=True, request=TesterRequestInfo.from_model(request))
        except Exception:
            logger.exception("submit_tester_request_failed")
            return TesterRequestResult(success=False, error="Failed to submit request")

    async def get_my_request(self, access_token: Optional[str]) -> TesterRequestResult:
        try:
            user = await _authenticate(self.roles.directory, access_token)
            if user is None:
                return TesterRequestResult(success=False, error=UNAUTHORIZED)
            request = await self.store.get_by_user(user.user_id)
            info = TesterRequestInfo.from_model(request) if request else None
            return TesterRequestResult(success=True, request=info)
        except Exception:
            logger.exception("get_tester_request_failed")
            return TesterRequestResult(success=False, error="Failed to get request status")

    async def list_requests(self, admin_token: Optional[str], pending_only: bool = True) -> TesterRequestResult:
        try:
            _, error = await self.roles.require_admin(admin_token)
            if error:
                return TesterRequestResult(success=False, error=error)
            status = TesterRequestStatus.PENDING.value if pending_only else None
            requests = await self.store.list(status)
            return TesterRequestResult(success=True, requests=[TesterRequestInfo.from_model(r) for r in requests])
        except Exception:
            logger.exception("list_tester_requests_failed")
            return TesterRequestResult(success=False, error="Failed to get requests")

    async def review_request(
        self,
        admin_token: Optional[str],
        request_id: str,
        approved: bool,
        allowed_envs: Optional[List[str]] = None,
    ) -> TesterRequestResult:
        """Approve or deny. Approval sets the requester's role to ``tester``."""
        try:
            admin, error = await self.roles.require_admin(admin_token)
            if error:
                return TesterRequestResult(success=False, error=error)

            envs = allowed_envs if allowed_envs else DEFAULT_TESTER_ENVS
            request = await self.store.review(request_id, admin.user_id, approved, envs)
            if request is None:
                return TesterRequestResult(success=False, error=REQUEST_NOT_FOUND)

            logger.info(
                "tester_request_reviewed",
                request_id=request_id,
                admin_id=admin.user_id,
                approved=approved,
            )
            return TesterRequestResult(success=True, request=TesterRequestInfo.from_model(request))
        except Exception:
            logger.exception("review_tester_request_failed", request_id=request_id)
            return TesterRequestResult(success=False, error="Failed to review request")
