"""Tests for PollingLoop start/stop semantics and tick error handling."""

from __future__ import annotations

import asyncio

from structlog.testing import capture_logs

from backend_fakes import wait_until
from src.lifehub.backend.polling import PollingLoop


class TestPollingLoop:
    async def test_first_tick_runs_before_start_returns(self):
        ticks = []

        async def check():
            ticks.append(1)

        loop = PollingLoop(check, interval=60, name="test")
        await loop.start()

        assert ticks == [1]
        assert loop.running
        await loop.stop()

    async def test_ticks_repeat_at_interval(self):
        ticks = []

        async def check():
            ticks.append(1)

        loop = PollingLoop(check, interval=0.005, name="test")
        await loop.start()
        assert await wait_until(lambda: len(ticks) >= 4)
        await loop.stop()

    async def test_stop_is_idempotent_and_final(self):
        ticks = []

        async def check():
            ticks.append(1)

        loop = PollingLoop(check, interval=0.005, name="test")
        await loop.start()
        await loop.stop()
        await loop.stop()
        count = len(ticks)
        await asyncio.sleep(0.03)

        assert len(ticks) == count
        assert not loop.running

    async def test_failing_tick_is_logged_and_loop_continues(self):
        ticks = []

        async def check():
            ticks.append(1)
            if len(ticks) == 2:
                raise ConnectionError("backend unreachable")

        loop = PollingLoop(check, interval=0.005, name="flaky")
        with capture_logs() as logs:
            await loop.start()
            assert await wait_until(lambda: len(ticks) >= 4)
        await loop.stop()

        failures = [entry for entry in logs if entry["event"] == "polling.tick_failed"]
        assert len(failures) == 1
        assert failures[0]["loop"] == "flaky"

    async def test_loop_can_stop_itself(self):
        """A check that stops its own loop must not deadlock awaiting itself."""
        holder = {}

        async def check():
            holder.setdefault("ticks", 0)
            holder["ticks"] += 1
            if holder["ticks"] == 2:
                await holder["loop"].stop()

        loop = PollingLoop(check, interval=0.005, name="self-stopping")
        holder["loop"] = loop
        await loop.start()

        assert await wait_until(lambda: not loop.running)
        await asyncio.sleep(0.02)
        assert holder["ticks"] == 2

    async def test_start_twice_keeps_one_task(self):
        ticks = []

        async def check():
            ticks.append(1)

        loop = PollingLoop(check, interval=60, name="test")
        await loop.start()
        await loop.start()

        assert ticks == [1]
        await loop.stop()
