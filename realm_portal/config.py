"""
Portal Configuration
====================
Process-wide configuration for the public website's link to the admin panel.

Loaded once at startup and passed into the signer, verifier, admin client and
services. Nothing below reads the environment at call time.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

DEFAULT_ADMIN_PANEL_URL = "http://localhost:3000"
FRESHNESS_WINDOW_MS = 5 * 60 * 1000
MIN_RESPONSE_MS = 1000


@dataclass(frozen=True)
class PortalConfig:
    """Immutable configuration for the portal."""
    service_key: Optional[str] = field(default=None, repr=False)
    admin_panel_url: str = DEFAULT_ADMIN_PANEL_URL
    request_timeout: float = 10.0
    status_timeout: float = 5.0
    min_response_ms: int = MIN_RESPONSE_MS
    freshness_window_ms: int = FRESHNESS_WINDOW_MS
    status_cache_ttl_ms: int = 30 * 1000
    status_cache_stale_ms: int = 5 * 60 * 1000
    database_url: str = "sqlite+aiosqlite:///./portal.db"
    auto_create_tables: bool = False
    service_name: str = "realm-portal"
    log_level: str = "INFO"
    json_logs: bool = True

    @property
    def has_service_key(self) -> bool:
        return bool(self.service_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PortalConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            PortalConfig instance
        """
        env = os.environ if environ is None else environ
        return cls(
            service_key=env.get("PUBLIC_SITE_SERVICE_KEY") or None,
            admin_panel_url=env.get("ADMIN_PANEL_URL", DEFAULT_ADMIN_PANEL_URL).rstrip("/"),
            min_response_ms=int(env.get("PORTAL_MIN_RESPONSE_MS", MIN_RESPONSE_MS)),
            database_url=env.get("DATABASE_URL", cls.database_url),
            auto_create_tables=env.get("DB_AUTO_CREATE", "false").lower() in ("1", "true", "yes"),
            service_name=env.get("SERVICE_NAME", cls.service_name),
            log_level=env.get("LOG_LEVEL", "INFO"),
            json_logs=env.get("LOG_JSON", "true").lower() in ("1", "true", "yes"),
        )
