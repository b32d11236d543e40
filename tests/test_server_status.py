import httpx
import pytest

from realm_portal.admin_client import STATUS_PATH, AdminClient
from realm_portal.config import PortalConfig
from realm_portal.server_status import FETCH_FAILED, UNREACHABLE, ServerStatusService


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_service(config, admin_stub, clock):
    return ServerStatusService(AdminClient(config, transport=admin_stub.transport), config, clock=clock)


class TestServerStatus:
    """Tests for the status cache and stale fallback."""

    @pytest.mark.asyncio
    async def test_fresh_fetch_then_cached(self, config, admin_stub):
        admin_stub.respond(STATUS_PATH, json_body={"online": True, "playerCount": 42, "maxPlayers": 1000, "uptime": "3d"})
        clock = FakeClock()
        service = make_service(config, admin_stub, clock)

        first = await service.get_status()
        clock.now += 10
        second = await service.get_status()

        assert first.success and not first.cached
        assert first.status.player_count == 42
        assert second.cached
        assert len(admin_stub.requests) == 1

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self, config, admin_stub):
        clock = FakeClock()
        service = make_service(config, admin_stub, clock)

        await service.get_status()
        clock.now += 31
        await service.get_status()

        assert len(admin_stub.requests) == 2

    @pytest.mark.asyncio
    async def test_stale_fallback_on_error(self, config, admin_stub):
        admin_stub.respond(STATUS_PATH, json_body={"online": True})
        clock = FakeClock()
        service = make_service(config, admin_stub, clock)
        await service.get_status()

        admin_stub.respond(STATUS_PATH, status_code=500, json_body={})
        clock.now += 60
        stale = await service.get_status()

        assert stale.success and stale.cached
        assert stale.status.online is True

    @pytest.mark.asyncio
    async def test_too_stale_returns_error(self, config, admin_stub):
        clock = FakeClock()
        service = make_service(config, admin_stub, clock)
        await service.get_status()

        admin_stub.respond(STATUS_PATH, status_code=500, json_body={})
        clock.now += 301
        result = await service.get_status()

        assert not result.success
        assert result.error == FETCH_FAILED

    @pytest.mark.asyncio
    async def test_unreachable_without_cache(self, config, admin_stub):
        admin_stub.fail(STATUS_PATH, httpx.ConnectTimeout("timed out"))
        service = make_service(config, admin_stub, FakeClock())

        result = await service.get_status()

        assert result.error == UNREACHABLE

    @pytest.mark.asyncio
    async def test_missing_key(self, admin_stub):
        config = PortalConfig(service_key=None)
        service = make_service(config, admin_stub, FakeClock())

        result = await service.get_status()

        assert result.error == "Server configuration error"
        assert admin_stub.requests == []

    @pytest.mark.asyncio
    async def test_unexpected_payload_falls_back_to_cache(self, config, admin_stub):
        admin_stub.respond(STATUS_PATH, json_body={"online": True, "playerCount": 3, "uptime": "1h"})
        clock = FakeClock()
        service = make_service(config, admin_stub, clock)
        await service.get_status()

        admin_stub.respond(STATUS_PATH, json_body={"online": True, "playerCount": 3, "uptime": 3600})
        clock.now += 60
        stale = await service.get_status()

        assert stale.success and stale.cached
        assert stale.status.uptime == "1h"

    @pytest.mark.asyncio
    async def test_unexpected_payload_without_cache(self, config, admin_stub):
        admin_stub.respond(STATUS_PATH, json_body={"online": True, "playerCount": "many"})
        service = make_service(config, admin_stub, FakeClock())

        result = await service.get_status()

        assert not result.success
        assert result.error == FETCH_FAILED
