"""
Application Factory
===================

Usage:
    config = PortalConfig.from_env()
    app = create_app(config, directory=MyDirectory(...))
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import __version__
from .admin_client import AdminClient
from .config import PortalConfig
from .content import ContentService
from .database import close_engine, create_engine, create_session_factory, create_tables
from .directory import UserDirectory
from .game_accounts import GameAccountService
from .log_setup import RequestLoggingMiddleware, setup_logging
from .roles import RoleService, TesterRequestService
from .routes import (
    create_content_admin_router,
    create_content_router,
    create_game_account_router,
    create_health_router,
    create_public_router,
    create_roles_router,
)
from .server_status import ServerStatusService
from .service_auth import SignatureGuardMiddleware, SignatureVerifier
from .store import ContentStore, GameAccountStore, TesterRequestStore, UserRoleStore
from .timing_gate import TimingSafeGate

logger = structlog.get_logger(__name__)

# Requests from the admin panel arrive under this prefix and must be signed
SIGNED_API_PREFIX = "/api/public"


def create_app(
    config: PortalConfig,
    directory: UserDirectory,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    store: Optional[GameAccountStore] = None,
    admin: Optional[AdminClient] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the portal application.

    Args:
        config: Loaded configuration
        directory: Hosted user directory adapter
        session_factory: Session factory; created from ``config.database_url`` when omitted
        store: Game account store; built on ``session_factory`` when omitted
        admin: Admin panel client; created from ``config`` when omitted
        configure_logging: Whether to install the structlog configuration

    Returns:
        FastAPI application
    """
    if configure_logging:
        setup_logging(config.service_name, config.log_level, config.json_logs)

    verifier = None
    if config.has_service_key:
        verifier = SignatureVerifier(config.service_key, freshness_window_ms=config.freshness_window_ms)
    else:
        logger.error("service_key_missing", hint="set PUBLIC_SITE_SERVICE_KEY")

    engine = None
    if session_factory is None:
        engine = create_engine(config.database_url)
        session_factory = create_session_factory(engine)

    admin = admin or AdminClient(config)
    status_service = ServerStatusService(admin, config)
    game_accounts = GameAccountService(
        directory=directory,
        store=store or GameAccountStore(session_factory),
        admin=admin,
        gate=TimingSafeGate(config.min_response_ms),
    )
    content = ContentService(ContentStore(session_factory))
    roles = RoleService(directory, UserRoleStore(session_factory))
    tester_requests = TesterRequestService(roles, TesterRequestStore(session_factory))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None and config.auto_create_tables:
            await create_tables(engine)
        yield
        await admin.close()
        if engine is not None:
            await close_engine(engine)

    app = FastAPI(title="Realm Portal", version=__version__, lifespan=lifespan)
    app.add_middleware(
        SignatureGuardMiddleware,
        verifier=verifier,
        protected_prefixes=(SIGNED_API_PREFIX,),
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(create_health_router(config.service_name, __version__))
    app.include_router(create_public_router(admin, status_service))
    app.include_router(create_game_account_router(game_accounts))
    app.include_router(create_content_admin_router(content))
    app.include_router(create_content_router(content))
    app.include_router(create_roles_router(roles, tester_requests))

    app.state.config = config
    app.state.admin = admin
    app.state.game_accounts = game_accounts
    app.state.server_status = status_service
    app.state.content = content
    app.state.roles = roles
    app.state.tester_requests = tester_requests
    return app
