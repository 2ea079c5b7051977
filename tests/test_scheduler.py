"""Tests for the periodic tick scheduler."""

import asyncio

import pytest

from workline.common.scheduler import ScheduledLoop, SchedulerGroup


class TestScheduledLoop:
    """Fixed-interval callbacks."""

    @pytest.mark.asyncio
    async def test_runs_repeatedly(self):
        calls = []

        async def tick():
            calls.append(1)

        loop = ScheduledLoop(0.01, tick, "test")
        await loop.start()
        await asyncio.sleep(0.1)
        loop.stop()

        assert len(calls) >= 3
        assert loop.execution_count == len(calls)
        assert not loop.is_running

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_loop(self):
        calls = []

        async def flaky():
            calls.append(1)
            raise RuntimeError("tick failed")

        loop = ScheduledLoop(0.01, flaky, "flaky")
        await loop.start()
        await asyncio.sleep(0.08)
        loop.stop()

        assert len(calls) >= 2
        assert loop.error_count == len(calls)
        assert loop.get_stats()["error_count"] == len(calls)

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        async def tick():
            pass

        loop = ScheduledLoop(1.0, tick)
        await loop.start()
        task = loop._task
        await loop.start()
        assert loop._task is task
        loop.stop()


class TestSchedulerGroup:
    """Several loops started and stopped together."""

    @pytest.mark.asyncio
    async def test_group(self):
        counts = {"a": 0, "b": 0}

        async def tick_a():
            counts["a"] += 1

        async def tick_b():
            counts["b"] += 1

        group = SchedulerGroup()
        group.add("a", 0.01, tick_a)
        group.add("b", 0.02, tick_b)
        await group.start_all()
        await asyncio.sleep(0.1)
        group.stop_all()

        assert counts["a"] > 0
        assert counts["b"] > 0
        assert set(group.get_stats()) == {"a", "b"}
        assert group.get("a").interval == 0.01
        assert group.get("missing") is None
