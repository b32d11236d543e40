"""
Unit Tests for the Game Account Service
=======================================
"""

import asyncio
import time

import httpx
import pytest

from realm_portal.admin_client import (
    ACCOUNT_CREATE_PATH,
    ACCOUNT_DELETE_PATH,
    ACCOUNT_PASSWORD_PATH,
    ACCOUNT_VERIFY_PATH,
    AdminClient,
)
from realm_portal.config import PortalConfig
from realm_portal.game_accounts import (
    ACCOUNT_CLAIMED,
    ALREADY_HAS_ACCOUNT,
    CLAIM_FAILED,
    CREATE_FAILED,
    NO_ACCOUNT,
    NOT_AUTHENTICATED,
    PASSWORD_LENGTH,
    USERNAME_CHARSET,
    USERNAME_LENGTH,
    USERNAME_TAKEN,
    GameAccountService,
    validate_credentials,
)
from realm_portal.timing_gate import TimingSafeGate


def make_service(config, directory, store, admin_stub, min_delay_ms=0):
    admin = AdminClient(config, transport=admin_stub.transport)
    return GameAccountService(directory, store, admin, TimingSafeGate(min_delay_ms))


class TestValidation:
    @pytest.mark.parametrize("username, password, expected", [
        ("ab", "secret1", USERNAME_LENGTH),
        ("a" * 18, "secret1", USERNAME_LENGTH),
        ("hero_1", "secret1", USERNAME_CHARSET),
        ("hero1", "12345", PASSWORD_LENGTH),
        ("hero1", "x" * 17, PASSWORD_LENGTH),
        ("hero1", "secret1", None),
    ])
    def test_validate_credentials(self, username, password, expected):
        assert validate_credentials(username, password) == expected


class TestCreateGameAccount:
    """Tests for game account provisioning."""

    @pytest.mark.asyncio
    async def test_create_success(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "Hero1", "secret1")

        assert result.success
        assert result.game_account.game_username == "hero1"
        assert admin_stub.body_of() == {"username": "hero1", "password": "secret1"}
        assert (await store.get_by_user("user-alice")).game_username == "hero1"

    @pytest.mark.asyncio
    async def test_not_authenticated(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("bogus", "hero1", "secret1")

        assert result.error == NOT_AUTHENTICATED
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_user_already_has_account(self, config, directory, store, admin_stub):
        await store.create("user-alice", "oldhero")
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "hero1", "secret1")

        assert result.error == ALREADY_HAS_ACCOUNT

    @pytest.mark.asyncio
    async def test_username_taken_locally(self, config, directory, store, admin_stub):
        await store.create("user-bob", "hero1")
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "HERO1", "secret1")

        assert result.error == USERNAME_TAKEN
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_validation_failure_skips_admin_call(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "hero!", "secret1")

        assert result.error == USERNAME_CHARSET
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_upstream_error_is_sanitized(self, config, directory, store, admin_stub):
        admin_stub.respond(ACCOUNT_CREATE_PATH, status_code=409, json_body={"error": "Account already exists in auth.account"})
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "hero1", "secret1")

        assert result.error == "Username is already taken"
        assert await store.get_by_user("user-alice") is None

    @pytest.mark.asyncio
    async def test_unknown_upstream_error_uses_fallback(self, config, directory, store, admin_stub):
        admin_stub.respond(
            ACCOUNT_CREATE_PATH,
            json_body={"success": False, "error": "TypeError: cannot read property 'x' of undefined at soap.js:41"},
        )
        service = make_service(config, directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "hero1", "secret1")

        assert result.error == CREATE_FAILED
        assert "soap.js" not in result.model_dump_json()

    @pytest.mark.asyncio
    async def test_missing_service_key(self, directory, store, admin_stub):
        service = make_service(PortalConfig(service_key=None), directory, store, admin_stub)

        result = await service.create_game_account("token-alice", "hero1", "secret1")

        assert result.error == "Server configuration error"
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_all_branches_respect_minimum_delay(self, config, directory, store, admin_stub):
        """Duplicate, invalid and upstream-failure branches all take the same floor."""
        await store.create("user-bob", "taken")
        admin_stub.fail(ACCOUNT_CREATE_PATH, httpx.ConnectError("Connection refused"))
        service = make_service(config, directory, store, admin_stub, min_delay_ms=150)

        async def timed(*args):
            start = time.monotonic()
            result = await service.create_game_account(*args)
            return result, time.monotonic() - start

        duplicate, t_duplicate = await timed("token-alice", "taken", "secret1")
        invalid, t_invalid = await timed("token-alice", "x", "secret1")
        upstream, t_upstream = await timed("token-alice", "hero1", "secret1")

        assert duplicate.error == USERNAME_TAKEN
        assert invalid.error == USERNAME_LENGTH
        assert upstream.error == "Service temporarily unavailable"
        for elapsed in (t_duplicate, t_invalid, t_upstream):
            assert elapsed >= 0.15

    @pytest.mark.asyncio
    async def test_cancellation_still_padded(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub, min_delay_ms=150)

        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        service.admin.create_account = hang

        start = time.monotonic()
        task = asyncio.create_task(service.create_game_account("token-alice", "hero1", "secret1"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - start >= 0.15


class TestClaimGameAccount:
    @pytest.mark.asyncio
    async def test_claim_success(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        result = await service.claim_game_account("token-alice", "OldHero", "secret1")

        assert result.success
        assert admin_stub.requests[0].url.path == ACCOUNT_VERIFY_PATH
        assert result.game_account.game_username == "oldhero"

    @pytest.mark.asyncio
    async def test_claim_already_linked_elsewhere(self, config, directory, store, admin_stub):
        await store.create("user-bob", "oldhero")
        service = make_service(config, directory, store, admin_stub)

        result = await service.claim_game_account("token-alice", "oldhero", "secret1")

        assert result.error == ACCOUNT_CLAIMED

    @pytest.mark.asyncio
    async def test_claim_bad_credentials(self, config, directory, store, admin_stub):
        admin_stub.respond(ACCOUNT_VERIFY_PATH, status_code=401, json_body={})
        service = make_service(config, directory, store, admin_stub)

        result = await service.claim_game_account("token-alice", "oldhero", "wrong")

        assert result.error == CLAIM_FAILED
        assert await store.get_by_user("user-alice") is None


class TestPasswordAndDelete:
    @pytest.mark.asyncio
    async def test_change_password(self, config, directory, store, admin_stub):
        await store.create("user-alice", "hero1")
        service = make_service(config, directory, store, admin_stub)

        result = await service.change_game_password("token-alice", "newpass1")

        assert result.success
        assert admin_stub.requests[0].url.path == ACCOUNT_PASSWORD_PATH
        assert admin_stub.body_of() == {"username": "hero1", "password": "newpass1"}

    @pytest.mark.asyncio
    async def test_change_password_without_account(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        result = await service.change_game_password("token-alice", "newpass1")

        assert result.error == NO_ACCOUNT

    @pytest.mark.asyncio
    async def test_change_password_too_short(self, config, directory, store, admin_stub):
        await store.create("user-alice", "hero1")
        service = make_service(config, directory, store, admin_stub)

        result = await service.change_game_password("token-alice", "abc")

        assert result.error == PASSWORD_LENGTH
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_delete_game_account(self, config, directory, store, admin_stub):
        await store.create("user-alice", "hero1")
        service = make_service(config, directory, store, admin_stub)

        result = await service.delete_game_account("token-alice")

        assert result.success
        assert admin_stub.requests[0].url.path == ACCOUNT_DELETE_PATH
        assert await store.get_by_user("user-alice") is None

    @pytest.mark.asyncio
    async def test_delete_game_account_upstream_failure_keeps_link(self, config, directory, store, admin_stub):
        await store.create("user-alice", "hero1")
        admin_stub.respond(ACCOUNT_DELETE_PATH, status_code=404, json_body={"error": "Account does not exist"})
        service = make_service(config, directory, store, admin_stub)

        result = await service.delete_game_account("token-alice")

        assert result.error == "Account not found"
        assert await store.get_by_user("user-alice") is not None

    @pytest.mark.asyncio
    async def test_delete_user_account_is_best_effort(self, config, directory, store, admin_stub):
        await store.create("user-alice", "hero1")
        admin_stub.respond(ACCOUNT_DELETE_PATH, status_code=500, json_body={"error": "SOAP down"})
        service = make_service(config, directory, store, admin_stub)

        result = await service.delete_user_account("token-alice")

        assert result.success
        assert await store.get_by_user("user-alice") is None
        assert directory.deleted == ["user-alice"]

    @pytest.mark.asyncio
    async def test_delete_user_account_directory_failure(self, config, failing_directory, store, admin_stub):
        directory = failing_directory
        service = make_service(config, directory, store, admin_stub)

        result = await service.delete_user_account("token-alice")

        assert not result.success
        assert result.error.startswith("Failed to delete account")

    @pytest.mark.asyncio
    async def test_get_game_account(self, config, directory, store, admin_stub):
        service = make_service(config, directory, store, admin_stub)

        empty = await service.get_game_account("token-alice")
        await store.create("user-alice", "hero1")
        linked = await service.get_game_account("token-alice")

        assert empty.success and empty.game_account is None
        assert linked.game_account.game_username == "hero1"
