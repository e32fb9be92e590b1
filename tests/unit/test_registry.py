"""Unit tests for the live session registry."""
import asyncio

import pytest

from app.core.config import settings
from app.services.call_session.models import CallSession, CallStatus, TurnRole
from app.services.call_session.registry import SessionRegistry


class TestResolve:
    """Test session lookup and reconstruction."""

    @pytest.mark.asyncio
    async def test_returns_tracked_session(self, store):
        """Test an in-memory session is returned as is."""
        registry = SessionRegistry(store)
        session = registry.register(CallSession("call-1", "campaign-1", "+15550001111"))

        assert await registry.resolve("call-1") is session

    @pytest.mark.asyncio
    async def test_rebuilds_active_record(self, store, active_call):
        """Test an active record becomes a session with empty history."""
        registry = SessionRegistry(store)

        session = await registry.resolve(active_call.id)

        assert session is not None
        assert session.call_id == active_call.id
        assert session.campaign_id == active_call.campaign_id
        assert session.turns == []
        assert active_call.id in registry

    @pytest.mark.asyncio
    async def test_completed_record_not_resumable(self, store, campaign):
        """Test completed and failed calls are not rebuilt."""
        store.add_call("done", campaign.id, status="completed")
        store.add_call("dropped", campaign.id, status="failed")
        registry = SessionRegistry(store)

        assert await registry.resolve("done") is None
        assert await registry.resolve("dropped") is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_hanging_store_times_out(self, store, active_call, monkeypatch):
        """Test a store that never answers raises instead of blocking the caller."""
        async def hang(call_id):
            await asyncio.Event().wait()

        monkeypatch.setattr(settings, "persistence_timeout_seconds", 0.05)
        monkeypatch.setattr(store, "get_call", hang)
        registry = SessionRegistry(store)

        with pytest.raises(asyncio.TimeoutError):
            await registry.resolve(active_call.id)
        assert active_call.id not in registry

    @pytest.mark.asyncio
    async def test_missing_record_not_resumable(self, store):
        registry = SessionRegistry(store)

        assert await registry.resolve("unknown") is None

    @pytest.mark.asyncio
    async def test_popped_call_is_not_rebuilt(self, store, active_call):
        """Test a call handed to completion is not resurrected from its record."""
        registry = SessionRegistry(store)
        await registry.resolve(active_call.id)

        registry.pop(active_call.id)

        assert await registry.resolve(active_call.id) is None
        assert registry.ensure_tracked(active_call) is None


class TestRegistryOperations:
    """Test registration, removal and locks."""

    def test_register_keeps_existing(self, store):
        """Test registering twice keeps the first session."""
        registry = SessionRegistry(store)
        first = registry.register(CallSession("call-1", "campaign-1", "+1"))
        first.add_turn(TurnRole.CALLER, "hello")

        second = registry.register(CallSession("call-1", "campaign-1", "+1"))

        assert second is first
        assert registry.get("call-1").turn_count == 1

    def test_pop_is_atomic(self, store):
        """Test only the first pop returns the session."""
        registry = SessionRegistry(store)
        registry.register(CallSession("call-1", "campaign-1", "+1"))

        assert registry.pop("call-1") is not None
        assert registry.pop("call-1") is None
        assert registry.active_sessions() == []

    def test_ensure_tracked_ignores_inactive(self, store, campaign):
        registry = SessionRegistry(store)
        record = store.add_call("done", campaign.id, status=CallStatus.COMPLETED.value)

        assert registry.ensure_tracked(record) is None

    @pytest.mark.asyncio
    async def test_lock_serializes_one_call(self, store):
        """Test work on the same call runs one request at a time."""
        registry = SessionRegistry(store)
        order = []

        async def work(name):
            async with registry.lock("call-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0)
                order.append(f"{name}-end")

        await asyncio.gather(work("a"), work("b"))

        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_lock_is_per_call(self, store):
        registry = SessionRegistry(store)

        async def other_call():
            async with registry.lock("call-2"):
                return True

        async with registry.lock("call-1"):
            assert await asyncio.wait_for(other_call(), 1.0)

    @pytest.mark.asyncio
    async def test_lock_kept_while_tracked(self, store):
        """Test a tracked call keeps its lock and an untracked one releases it."""
        registry = SessionRegistry(store)
        registry.register(CallSession("call-1", "campaign-1", "+1"))

        async with registry.lock("call-1"):
            pass
        assert "call-1" in registry._locks

        async with registry.lock("call-1"):
            registry.pop("call-1")
        assert "call-1" not in registry._locks

        async with registry.lock("unknown"):
            pass
        assert "unknown" not in registry._locks

    @pytest.mark.asyncio
    async def test_waiting_request_keeps_lock(self, store):
        """Test the lock is not dropped while another request waits for it."""
        registry = SessionRegistry(store)
        entered = []

        async def waiter():
            async with registry.lock("call-1"):
                entered.append("waiter")

        async with registry.lock("call-1"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0)
            first_lock = registry._locks["call-1"]

        assert registry._locks["call-1"] is first_lock
        await task

        assert entered == ["waiter"]
        assert registry.bookkeeping_size() == 0

    def test_ended_ids_are_bounded(self, store):
        """Test only the most recent ended calls are remembered."""
        registry = SessionRegistry(store, max_ended=2)
        for i in range(3):
            registry.register(CallSession(f"call-{i}", "campaign-1", "+1"))
            registry.pop(f"call-{i}")

        assert not registry.is_ended("call-0")
        assert registry.is_ended("call-1")
        assert registry.is_ended("call-2")

        registry.forget_ended("call-2")
        assert not registry.is_ended("call-2")

    def test_pop_untracked_is_not_remembered(self, store):
        registry = SessionRegistry(store)

        assert registry.pop("never-tracked") is None
        assert not registry.is_ended("never-tracked")
        assert registry.bookkeeping_size() == 0

    def test_clear(self, store):
        registry = SessionRegistry(store)
        registry.register(CallSession("call-1", "campaign-1", "+1"))

        registry.clear()

        assert len(registry) == 0


class TestCallSession:
    """Test session history behaviour."""

    def test_history_is_append_only_snapshot(self):
        """Test turns returns a copy in chronological order."""
        session = CallSession("call-1", "campaign-1", "+1")
        session.add_turn(TurnRole.CALLER, "hi")
        session.add_turn(TurnRole.AGENT, "hello")

        snapshot = session.turns
        snapshot.clear()

        assert [t.text for t in session.turns] == ["hi", "hello"]

    def test_recent_history_window(self):
        session = CallSession("call-1", "campaign-1", "+1")
        for i in range(6):
            session.add_turn(TurnRole.CALLER if i % 2 == 0 else TurnRole.AGENT, f"t{i}")

        history = session.recent_history(4)

        assert [m["content"] for m in history] == ["t2", "t3", "t4", "t5"]
        assert history[0]["role"] == "user"
        assert history[1]["role"] == "assistant"

    def test_no_turns_after_completion(self):
        session = CallSession("call-1", "campaign-1", "+1")
        session.status = CallStatus.COMPLETED

        with pytest.raises(RuntimeError):
            session.add_turn(TurnRole.CALLER, "late")
