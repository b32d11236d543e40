import json
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx
import pytest

from realm_portal.config import PortalConfig
from realm_portal.directory import DirectoryError, DirectoryUser
from realm_portal.models import GameAccount

SERVICE_KEY = "test-service-key-0123456789abcdef"


class FakeDirectory:
    """In-memory stand-in for the hosted user directory."""

    def __init__(self, users: Optional[Dict[str, str]] = None, fail_delete: bool = False):
        self.users = users or {}
        self.deleted: List[str] = []
        self.fail_delete = fail_delete

    async def get_user(self, access_token):
        user_id = self.users.get(access_token)
        return DirectoryUser(user_id=user_id, email=f"{user_id}@example.com") if user_id else None

    async def delete_user(self, user_id):
        if self.fail_delete:
            raise DirectoryError("delete failed")
        self.deleted.append(user_id)


class AdminPanelStub:
    """
    Records requests and answers with queued responses.

    Responses default to ``{"success": true}``.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, httpx.Response] = {}
        self.raise_for: Dict[str, Exception] = {}

    def respond(self, path, status_code=200, json_body=None):
        self.routes[path] = httpx.Response(status_code, json=json_body if json_body is not None else {"success": True})

    def fail(self, path, exc):
        self.raise_for[path] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.raise_for:
            raise self.raise_for[path]
        return self.routes.get(path, httpx.Response(200, json={"success": True}))

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

    def body_of(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def config():
    return PortalConfig(
        service_key=SERVICE_KEY,
        admin_panel_url="http://admin.test",
        min_response_ms=0,
        database_url="sqlite+aiosqlite:///:memory:",
        json_logs=False,
    )


@pytest.fixture
def admin_stub():
    return AdminPanelStub()


class FakeStore:
    """Dict-backed GameAccountStore with the same async interface."""

    def __init__(self):
        self.accounts: Dict[str, GameAccount] = {}

    async def get_by_user(self, user_id):
        return next((a for a in self.accounts.values() if a.user_id == user_id), None)

    async def get_by_username(self, game_username):
        name = game_username.lower()
        return next((a for a in self.accounts.values() if a.game_username == name), None)

    async def create(self, user_id, game_username):
        account = GameAccount(
            id=str(uuid.uuid4()),
            user_id=user_id,
            game_username=game_username.lower(),
            created_at=datetime.now(timezone.utc),
        )
        self.accounts[account.id] = account
        return account

    async def delete(self, account_id):
        self.accounts.pop(account_id, None)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def directory():
    return FakeDirectory({"token-alice": "user-alice", "token-bob": "user-bob", "token-admin": "user-admin"})


@pytest.fixture
def failing_directory():
    return FakeDirectory({"token-alice": "user-alice"}, fail_delete=True)
