"""
Portal Routes
=============
FastAPI routers for game accounts, realm status, patcher downloads,
content, roles and health checks.
"""

import time
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from .admin_client import AdminClient
from .content import INVALID_BODY, NOT_FOUND, ContentListResult, ContentResult, ContentService
from .exceptions import ConfigurationError, UpstreamError
from .game_accounts import NOT_AUTHENTICATED, GameAccountResult, GameAccountService
from .metrics import get_metrics_text
from .roles import (
    ADMIN_REQUIRED,
    REQUEST_NOT_FOUND,
    UNAUTHORIZED,
    RoleResult,
    RoleService,
    TesterRequestResult,
    TesterRequestService,
)
from .sanitizer import UserErrors
from .server_status import ServerStatusResult, ServerStatusService

logger = structlog.get_logger(__name__)


class CredentialsRequest(BaseModel):
    username: str
    password: str


class PasswordChangeRequest(BaseModel):
    new_password: str


def bearer_token(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    """Extract the access token from ``Authorization: Bearer ...``."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


def _result_response(result: GameAccountResult) -> JSONResponse:
    if result.success:
        status_code = 200
    elif result.error == NOT_AUTHENTICATED:
        status_code = 401
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content=result.model_dump())


def create_game_account_router(service: GameAccountService) -> APIRouter:
    router = APIRouter(tags=["Game Accounts"])

    @router.get("/api/game-account")
    async def get_game_account(token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.get_game_account(token))

    @router.post("/api/game-account/create")
    async def create_game_account(body: CredentialsRequest, token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.create_game_account(token, body.username, body.password))

    @router.post("/api/game-account/claim")
    async def claim_game_account(body: CredentialsRequest, token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.claim_game_account(token, body.username, body.password))

    @router.post("/api/game-account/password")
    async def change_game_password(body: PasswordChangeRequest, token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.change_game_password(token, body.new_password))

    @router.post("/api/game-account/delete")
    async def delete_game_account(token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.delete_game_account(token))

    @router.post("/api/account/delete")
    async def delete_user_account(token: Optional[str] = Depends(bearer_token)):
        return _result_response(await service.delete_user_account(token))

    return router


def create_public_router(admin: AdminClient, status_service: ServerStatusService) -> APIRouter:
    router = APIRouter(tags=["Public"])

    @router.get("/api/server-status", response_model=ServerStatusResult)
    async def server_status() -> ServerStatusResult:
        return await status_service.get_status()

    @router.get("/api/download/patcher")
    async def patcher_download():
        try:
            url = await admin.get_patcher_download_url()
        except ConfigurationError:
            return Response("Service unavailable", status_code=503)
        except UpstreamError as e:
            logger.error("patcher_download_failed", status=e.status_code, error=e.message)
            return Response("Download temporarily unavailable", status_code=502)

        # Signed URLs expire, so the redirect must not be cached
        return RedirectResponse(
            url,
            status_code=302,
            headers={"Cache-Control": "no-store, no-cache, must-revalidate"},
        )

    @router.get("/api/download/patcher-info")
    async def patcher_info():
        try:
            data = await admin.get_patcher_info()
        except ConfigurationError as e:
            raise UserErrors.config_error(str(e))
        except UpstreamError as e:
            logger.error("patcher_info_failed", status=e.status_code, error=e.message)
            return JSONResponse(
                status_code=502,
                content={"success": False, "error": "Info temporarily unavailable"},
            )

        data.pop("success", None)
        return JSONResponse(
            content={"success": True, **data},
            headers={"Cache-Control": "public, max-age=300"},
        )

    return router


CONTENT_API_PREFIX = "/api/public/content"


def _content_response(result, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json", by_alias=True))


def _content_failure(result: ContentResult) -> JSONResponse:
    return _content_response(result, 404 if result.error == NOT_FOUND else 400)


async def _json_payload(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


def create_content_admin_router(service: ContentService) -> APIRouter:
    """
    Content management API called by the admin panel.

    Mounted under ``/api/public``; the signature guard authenticates every
    request before it reaches these handlers.
    """
    router = APIRouter(prefix=CONTENT_API_PREFIX, tags=["Content (admin panel)"])

    @router.get("")
    async def list_content(
        content_type: Optional[str] = Query(default=None, alias="type"),
        published: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ):
        result = await service.list_content(content_type, published, limit, offset)
        return _content_response(result, 200 if result.success else 400)

    @router.post("")
    async def create_content(request: Request):
        payload = await _json_payload(request)
        if payload is None:
            return _content_response(ContentResult.fail(INVALID_BODY), 400)
        result = await service.create_content(payload)
        return _content_response(result, 201) if result.success else _content_failure(result)

    @router.get("/{content_id}")
    async def get_content(content_id: str):
        result = await service.get_content(content_id)
        if not result.success:
            return _content_failure(result)
        return _content_response(result)

    @router.put("/{content_id}")
    async def update_content(content_id: str, request: Request):
        payload = await _json_payload(request)
        if payload is None:
            return _content_response(ContentResult.fail(INVALID_BODY), 400)
        result = await service.update_content(content_id, payload)
        return _content_response(result) if result.success else _content_failure(result)

    @router.delete("/{content_id}")
    async def delete_content(content_id: str):
        result = await service.delete_content(content_id)
        if not result.success:
            return _content_response(result, 404 if result.error == NOT_FOUND else 500)
        return _content_response(result)

    return router


def create_content_router(service: ContentService) -> APIRouter:
    """Read-only access to published content for site visitors."""
    router = APIRouter(prefix="/api/content", tags=["Content"])

    @router.get("", response_model=ContentListResult)
    async def list_published_content(
        content_type: Optional[str] = Query(default=None, alias="type"),
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
    ):
        result = await service.list_published(content_type, limit, offset)
        return _content_response(result, 200 if result.success else 400)

    @router.get("/{slug}")
    async def get_published_content(slug: str):
        result = await service.get_published(slug)
        if not result.success:
            return _content_failure(result)
        return _content_response(result)

    return router


class TesterRequestBody(BaseModel):
    reason: Optional[str] = None


class ReviewRequestBody(BaseModel):
    approved: bool
    allowed_envs: Optional[List[str]] = None


class RoleUpdateBody(BaseModel):
    role: str
    allowed_envs: Optional[List[str]] = None


def _role_response(result) -> JSONResponse:
    if result.success:
        status_code = 200
    elif result.error == UNAUTHORIZED:
        status_code = 401
    elif result.error == ADMIN_REQUIRED:
        status_code = 403
    elif result.error == REQUEST_NOT_FOUND:
        status_code = 404
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def create_roles_router(roles: RoleService, tester_requests: TesterRequestService) -> APIRouter:
    router = APIRouter(tags=["Roles"])

    @router.get("/api/account/role", response_model=RoleResult)
    async def get_my_role(token: Optional[str] = Depends(bearer_token)):
        return _role_response(await roles.get_my_role(token))

    @router.get("/api/account/tester-request", response_model=TesterRequestResult)
    async def get_my_tester_request(token: Optional[str] = Depends(bearer_token)):
        return _role_response(await tester_requests.get_my_request(token))

    @router.post("/api/account/tester-request", response_model=TesterRequestResult)
    async def submit_tester_request(body: TesterRequestBody, token: Optional[str] = Depends(bearer_token)):
        return _role_response(await tester_requests.submit_request(token, body.reason))

    @router.get("/api/admin/tester-requests", response_model=TesterRequestResult)
    async def list_tester_requests(
        include_reviewed: bool = Query(default=False, alias="all"),
        token: Optional[str] = Depends(bearer_token)):
        return _role_response(await tester_requests.list_requests(token, pending_only=not include_reviewed))

    @router.post("/api/admin/tester-requests/{request_id}/review", response_model=TesterRequestResult)
    async def review_tester_request(
        request_id: str,
        body: ReviewRequestBody,
        token: Optional[str] = Depends(bearer_token),
    ):
        return _role_response(
            await tester_requests.review_request(token, request_id, body.approved, body.allowed_envs)
        )

    @router.get("/api/admin/users", response_model=RoleResult)
    async def list_users(token: Optional[str] = Depends(bearer_token)):
        return _role_response(await roles.list_users_with_roles(token))

    @router.post("/api/admin/users/{user_id}/role", response_model=RoleResult)
    async def update_user_role(user_id: str, body: RoleUpdateBody, token: Optional[str] = Depends(bearer_token)):
        return _role_response(await roles.update_user_role(token, user_id, body.role, body.allowed_envs))

    return router


def create_health_router(service_name: str, version: str) -> APIRouter:
    router = APIRouter(tags=["Health"])

    @router.get("/health")
    async def health_check():
        return {"status": "healthy", "service": service_name, "version": version, "timestamp": time.time()}

    @router.get("/health/live")
    async def liveness_probe():
        """Liveness probe - always returns 200 if the process is running."""
        return {"status": "alive"}

    @router.get("/metrics")
    async def metrics():
        payload, content_type = get_metrics_text()
        return Response(content=payload, media_type=content_type)

    return router
