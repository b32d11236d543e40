"""
Admin Panel Client
==================
Signed HTTP client for the website's calls to the admin panel.

Usage:
    async with AdminClient(config) as client:
        await client.create_account("hero1", "secret1")

Every request body is signed and sent byte-for-byte as signed. The client
never retries; callers decide.
"""

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from .config import PortalConfig
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    ServiceTimeoutError,
    ServiceUnavailableError,
    UpstreamError,
)
from .metrics import record_admin_call
from .service_auth import RequestSigner

logger = structlog.get_logger(__name__)

ACCOUNT_CREATE_PATH = "/api/public/account/create"
ACCOUNT_VERIFY_PATH = "/api/public/account/verify"
ACCOUNT_PASSWORD_PATH = "/api/public/account/password"
ACCOUNT_DELETE_PATH = "/api/public/account/delete"
STATUS_PATH = "/api/public/status"
PATCHER_INFO_PATH = "/api/public/patcher-info"
PATCHER_DOWNLOAD_PATH = "/api/public/patcher-download"


def _error_field(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        error = data.get("error")
        return str(error) if error is not None else None
    return None


class AdminClient:
    """
    Client for the website to talk to the admin panel.

    Features:
    - HMAC-signed requests (X-Service-Key, X-Timestamp, X-Signature)
    - Game account create / verify / password / delete
    - Server status and patcher download lookups
    - Upstream failures mapped to UpstreamError subclasses
    """

    def __init__(
        self,
        config: PortalConfig,
        signer: Optional[RequestSigner] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.signer = signer or RequestSigner(config.service_key)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._get_client()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.admin_panel_url,
                timeout=self.config.request_timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _map_exception(self, exc: httpx.HTTPError, path: str) -> UpstreamError:
        """Map httpx transport exceptions to upstream errors."""
        if isinstance(exc, httpx.TimeoutException):
            return ServiceTimeoutError("Request timed out", path=path)
        if isinstance(exc, httpx.TransportError):
            return ServiceUnavailableError(
                "Failed to connect", raw_error=str(exc) or "connection refused", path=path
            )
        return UpstreamError(f"Unexpected error: {exc}", path=path)

    def _map_status(self, response: httpx.Response, path: str) -> UpstreamError:
        status = response.status_code
        raw_error = _error_field(response)
        if status in (401, 403):
            return AuthenticationError("Rejected by admin panel", status, raw_error, path)
        if status == 404:
            return NotFoundError("Resource not found", status, raw_error, path)
        if status >= 500:
            return ServiceUnavailableError("Server error", status, raw_error, path)
        return UpstreamError(f"HTTP {status} Error", status, raw_error, path)

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Sign and send one request.

        Raises:
            ConfigurationError: service key missing; no request is sent
            UpstreamError: non-2xx response, ``success: false`` or transport failure
        """
        start = time.monotonic()
        try:
            envelope = self.signer.sign_envelope(method, path, body)
        except ConfigurationError:
            record_admin_call(method, path, "config_error", 0.0)
            raise

        client = await self._get_client()
        request_kwargs = {"headers": envelope.headers}
        if envelope.body:
            request_kwargs["content"] = envelope.body
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        try:
            response = await client.request(envelope.method, path, **request_kwargs)
        except httpx.HTTPError as e:
            error = self._map_exception(e, path)
            status = "timeout" if isinstance(error, ServiceTimeoutError) else "unavailable"
            record_admin_call(method, path, status, time.monotonic() - start)
            logger.warning("admin_request_failed", method=method, path=path, error=error.message)
            raise error

        duration = time.monotonic() - start
        if response.is_error:
            record_admin_call(method, path, "error", duration)
            logger.warning("admin_request_rejected", method=method, path=path, status=response.status_code)
            raise self._map_status(response, path)

        try:
            data = response.json()
        except ValueError:
            record_admin_call(method, path, "error", duration)
            raise UpstreamError("Invalid JSON from admin panel", response.status_code, path=path)

        if not isinstance(data, dict):
            data = {"data": data}
        if data.get("success") is False:
            record_admin_call(method, path, "error", duration)
            raise UpstreamError(
                "Operation failed", response.status_code, _error_field(response), path
            )

        record_admin_call(method, path, "success", duration)
        return data

    # Game account operations

    async def create_account(self, username: str, password: str) -> Dict[str, Any]:
        """Create a game account on the game server."""
        return await self._request(
            "POST", ACCOUNT_CREATE_PATH, {"username": username, "password": password}
        )

    async def verify_account(self, username: str, password: str) -> Dict[str, Any]:
        """Verify credentials of an existing game account."""
        return await self._request(
            "POST", ACCOUNT_VERIFY_PATH, {"username": username, "password": password}
        )

    async def change_password(self, username: str, password: str) -> Dict[str, Any]:
        """Issue a password change for a game account."""
        return await self._request(
            "POST", ACCOUNT_PASSWORD_PATH, {"username": username, "password": password}
        )

    async def delete_account(self, username: str) -> Dict[str, Any]:
        """Delete a game account on the game server."""
        return await self._request("POST", ACCOUNT_DELETE_PATH, {"username": username})

    # Status and downloads

    async def get_status(self) -> Dict[str, Any]:
        """Fetch realm status with the short status timeout."""
        return await self._request("GET", STATUS_PATH, timeout=self.config.status_timeout)

    async def get_patcher_info(self) -> Dict[str, Any]:
        """Fetch patcher file metadata (filename, size, sha256, lastModified)."""
        return await self._request("GET", PATCHER_INFO_PATH)

    async def get_patcher_download_url(self) -> str:
        """Fetch a short-lived signed download URL for the patcher."""
        data = await self._request("GET", PATCHER_DOWNLOAD_PATH)
        url = data.get("url")
        if not url:
            logger.error("admin_no_download_url")
            raise UpstreamError("No download URL returned", path=PATCHER_DOWNLOAD_PATH)
        return url
