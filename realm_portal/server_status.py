"""
Server Status
=============
Realm status from the admin panel with an in-process cache.

Fresh cache entries (younger than the TTL) are served without a network
call. When the admin panel fails, entries younger than the stale limit are
served as a fallback.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, ValidationError

from .admin_client import AdminClient
from .config import PortalConfig
from .exceptions import ConfigurationError, ServiceTimeoutError, UpstreamError
from .sanitizer import CONFIGURATION_ERROR

logger = structlog.get_logger(__name__)

FETCH_FAILED = "Failed to fetch server status"
UNREACHABLE = "Unable to reach server"


class ServerStatus(BaseModel):
    online: bool = False
    player_count: Optional[int] = None
    max_players: Optional[int] = None
    uptime: Optional[str] = None


class ServerStatusResult(BaseModel):
    success: bool
    error: Optional[str] = None
    status: Optional[ServerStatus] = None
    cached: bool = False
    cached_at: Optional[str] = None


class ServerStatusService:
    """Caches the last good status per instance."""

    def __init__(
        self,
        admin: AdminClient,
        config: PortalConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.admin = admin
        self.ttl_seconds = config.status_cache_ttl_ms / 1000
        self.stale_seconds = config.status_cache_stale_ms / 1000
        self._clock = clock
        self._status: Optional[ServerStatus] = None
        self._cached_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _age(self, now: float) -> Optional[float]:
        if self._status is None or self._cached_at is None:
            return None
        return now - self._cached_at

    def _cached_result(self) -> ServerStatusResult:
        return ServerStatusResult(
            success=True,
            status=self._status,
            cached=True,
            cached_at=datetime.fromtimestamp(self._cached_at, tz=timezone.utc).isoformat(),
        )

    def _fallback(self, now: float, error: str, max_age: Optional[float] = None) -> ServerStatusResult:
        age = self._age(now)
        if age is not None and (max_age is None or age < max_age):
            return self._cached_result()
        return ServerStatusResult(success=False, error=error)

    async def get_status(self) -> ServerStatusResult:
        now = self._clock()
        age = self._age(now)
        if age is not None and age < self.ttl_seconds:
            return self._cached_result()

        async with self._lock:
            # Another request may have refreshed while we waited
            now = self._clock()
            age = self._age(now)
            if age is not None and age < self.ttl_seconds:
                return self._cached_result()
            return await self._refresh(now)

    async def _refresh(self, now: float) -> ServerStatusResult:
        try:
            data = await self.admin.get_status()
        except ConfigurationError:
            logger.warning("server_status_missing_service_key")
            return self._fallback(now, CONFIGURATION_ERROR)
        except ServiceTimeoutError:
            logger.warning("server_status_timed_out")
            return self._fallback(now, UNREACHABLE, self.stale_seconds)
        except UpstreamError as e:
            if e.status_code is not None:
                logger.error("server_status_error", status=e.status_code)
                return self._fallback(now, FETCH_FAILED, self.stale_seconds)
            logger.error("server_status_unreachable", error=e.message)
            return self._fallback(now, UNREACHABLE, self.stale_seconds)

        try:
            status = ServerStatus(
                online=bool(data.get("online", False)),
                player_count=data.get("playerCount"),
                max_players=data.get("maxPlayers"),
                uptime=data.get("uptime"),
            )
        except ValidationError as e:
            logger.error("server_status_invalid_payload", errors=e.error_count())
            return self._fallback(now, FETCH_FAILED, self.stale_seconds)
        self._status = status
        self._cached_at = now
        return ServerStatusResult(success=True, status=status, cached=False)
