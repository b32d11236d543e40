"""
Signature Guard Middleware
==========================
Receiving-side enforcement of signed admin-panel requests.

Usage:
    from realm_portal.service_auth import SignatureGuardMiddleware, SignatureVerifier

    app.add_middleware(
        SignatureGuardMiddleware,
        verifier=SignatureVerifier(config.service_key),
        protected_prefixes=("/api/public",),
    )
"""

from typing import Iterable, Optional, Set

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .verifier import SignatureVerifier

logger = structlog.get_logger(__name__)


class SignatureGuardMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests under the protected prefixes unless they carry a valid
    signature.

    Every rejection returns the same 401 body; the specific reason is only
    logged. Without a verifier (no service key configured) every protected
    request is rejected.
    """

    DEFAULT_PUBLIC_PATHS: Set[str] = {
        "/health",
        "/health/live",
        "/metrics",
    }

    def __init__(
        self,
        app,
        verifier: Optional[SignatureVerifier],
        protected_prefixes: Iterable[str] = ("/api/public",),
        public_paths: Optional[Set[str]] = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.protected_prefixes = tuple(protected_prefixes)
        self.public_paths = public_paths or self.DEFAULT_PUBLIC_PATHS

    def _is_protected(self, path: str) -> bool:
        if path.rstrip("/") in self.public_paths:
            return False
        return any(path.startswith(p) for p in self.protected_prefixes)

    def _get_client_ip(self, request: Request) -> str:
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if request.method == "OPTIONS" or not self._is_protected(path):
            return await call_next(request)

        if self.verifier is None:
            logger.error("signature_guard_unconfigured", path=path, method=request.method)
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        raw_body = await request.body()
        outcome = self.verifier.verify_headers(request.method, path, raw_body, request.headers)

        if not outcome.valid:
            logger.warning(
                "signature_guard_blocked",
                path=path,
                method=request.method,
                client_ip=self._get_client_ip(request),
                reason=outcome.reason.value,
            )
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

        return await call_next(request)
