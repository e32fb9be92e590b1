"""Unit tests for the deferred task scheduler."""
import asyncio

import pytest

from app.services.call_session.scheduler import DeferredTaskScheduler


class TestDeferredTaskScheduler:
    """Test delayed execution, cancellation and draining."""

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        """Test the factory runs once the injected sleep returns."""
        delays = []
        ran = []

        async def fake_sleep(delay):
            delays.append(delay)

        async def work():
            ran.append(True)

        scheduler = DeferredTaskScheduler(sleep=fake_sleep)
        handle = scheduler.schedule(1.5, work, name="work")
        await handle

        assert delays == [1.5]
        assert ran == [True]
        assert handle.done
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_before_run(self):
        """Test a cancelled task never runs."""
        gate = asyncio.Event()
        ran = []

        async def gated_sleep(delay):
            await gate.wait()

        async def work():
            ran.append(True)

        scheduler = DeferredTaskScheduler(sleep=gated_sleep)
        handle = scheduler.schedule(10, work)
        await asyncio.sleep(0)

        assert scheduler.pending == 1
        assert handle.cancel()
        await scheduler.wait_all()

        assert handle.cancelled
        assert ran == []

    @pytest.mark.asyncio
    async def test_failures_are_contained(self):
        """Test an exception in a task does not escape."""
        async def instant(delay):
            pass

        async def boom():
            raise RuntimeError("boom")

        scheduler = DeferredTaskScheduler(sleep=instant)
        handle = scheduler.schedule(0, boom)
        await handle

        assert handle.done
        assert not handle.cancelled

    @pytest.mark.asyncio
    async def test_wait_all_drains_chained_tasks(self):
        """Test tasks scheduled by other tasks are waited for too."""
        async def instant(delay):
            pass

        order = []
        scheduler = DeferredTaskScheduler(sleep=instant)

        async def second():
            order.append("second")

        async def first():
            order.append("first")
            scheduler.schedule(0, second)

        scheduler.schedule(0, first)
        await scheduler.wait_all()

        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        scheduler = DeferredTaskScheduler()

        async def work():
            pass

        handle = scheduler.schedule(3600, work)
        await scheduler.shutdown()

        assert handle.cancelled
        assert scheduler.pending == 0
