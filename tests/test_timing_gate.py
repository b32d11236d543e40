"""
Unit Tests for the Timing-Safe Gate
===================================
"""

import asyncio
import time

import pytest

from realm_portal.timing_gate import TimingSafeGate, timing_safe

MIN_DELAY_MS = 200
TOLERANCE_S = 0.05


async def timed(coro):
    start = time.monotonic()
    try:
        result = await coro
    except Exception as e:
        result = e
    return result, time.monotonic() - start


class TestTimingSafeGate:
    """Tests for the minimum response time guarantee."""

    @pytest.mark.asyncio
    async def test_fast_failure_and_fast_success_take_the_same_time(self):
        gate = TimingSafeGate(MIN_DELAY_MS)

        @gate
        async def create(username):
            if username == "taken":
                return {"success": False, "error": "Username is already taken"}
            await asyncio.sleep(0.01)
            return {"success": True}

        for _ in range(3):
            failed, failed_elapsed = await timed(create("taken"))
            created, created_elapsed = await timed(create("fresh"))

            assert failed["success"] is False
            assert created["success"] is True
            assert failed_elapsed >= MIN_DELAY_MS / 1000
            assert created_elapsed >= MIN_DELAY_MS / 1000
            assert abs(failed_elapsed - created_elapsed) <= TOLERANCE_S

    @pytest.mark.asyncio
    async def test_exception_is_delayed_and_propagated_unchanged(self):
        gate = TimingSafeGate(MIN_DELAY_MS)
        error = RuntimeError("upstream down")

        async def explode():
            raise error

        result, elapsed = await timed(gate.run(explode))

        assert result is error
        assert elapsed >= MIN_DELAY_MS / 1000

    @pytest.mark.asyncio
    async def test_timeout_path_still_padded(self):
        gate = TimingSafeGate(MIN_DELAY_MS)

        async def slow_call():
            await asyncio.wait_for(asyncio.sleep(10), timeout=0.01)

        result, elapsed = await timed(gate.run(slow_call))

        assert isinstance(result, asyncio.TimeoutError)
        assert elapsed >= MIN_DELAY_MS / 1000

    @pytest.mark.asyncio
    async def test_slow_operation_not_delayed_further(self):
        gate = TimingSafeGate(50)

        async def slow():
            await asyncio.sleep(0.12)
            return "done"

        result, elapsed = await timed(gate.run(slow))

        assert result == "done"
        assert elapsed < 0.12 + TOLERANCE_S

    @pytest.mark.asyncio
    async def test_delay_does_not_block_other_requests(self):
        """Concurrent gated calls overlap instead of queueing."""
        gate = TimingSafeGate(MIN_DELAY_MS)

        async def noop():
            return True

        start = time.monotonic()
        results = await asyncio.gather(*(gate.run(noop) for _ in range(10)))
        elapsed = time.monotonic() - start

        assert all(results)
        assert elapsed < 2 * MIN_DELAY_MS / 1000

    @pytest.mark.asyncio
    async def test_pads_using_injected_clock_and_sleep(self):
        slept = []
        ticks = iter([100.0, 100.25])

        async def fake_sleep(seconds):
            slept.append(seconds)

        gate = TimingSafeGate(1000, clock=lambda: next(ticks), sleep=fake_sleep)

        async def op():
            return 42

        assert await gate.run(op) == 42
        assert slept == [pytest.approx(0.75)]

    @pytest.mark.asyncio
    async def test_decorator_factory_preserves_name(self):
        @timing_safe(0)
        async def claim_game_account():
            return "ok"

        assert claim_game_account.__name__ == "claim_game_account"
        assert await claim_game_account() == "ok"

    def test_negative_delay_rejected(self):
        with pytest.raises(ValueError):
            TimingSafeGate(-1)
