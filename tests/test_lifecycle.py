"""Tests for services/sync/lifecycle.py - Session-driven start/stop."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.sync.lifecycle import SessionLifecycleController, SessionState
from services.sync.scheduler import SyncScheduler
from services.sync.session_events import SessionEventHub
from services.sync.types import Identity, SessionEvent, SessionEventType, SyncJobResult


@pytest.fixture
def scheduler():
    mock = MagicMock(spec=SyncScheduler)
    mock.start = AsyncMock(return_value=SyncJobResult(success=True))
    mock.stop = AsyncMock()
    mock.trigger_manual_sync = AsyncMock(return_value=SyncJobResult(success=True))
    return mock


class TestInitialize:
    async def test_restored_session_starts_scheduler(self, scheduler, hub):
        controller = SessionLifecycleController(scheduler, hub)
        assert await controller.initialize() == SessionState.ACTIVE
        scheduler.start.assert_awaited_once()

    async def test_no_session_stays_idle(self, scheduler):
        controller = SessionLifecycleController(scheduler, SessionEventHub())
        assert await controller.initialize() == SessionState.IDLE
        scheduler.start.assert_not_awaited()

    async def test_initialize_twice_subscribes_once(self, scheduler, hub):
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()
        await controller.initialize()
        await hub.sign_out()
        scheduler.stop.assert_awaited_once()
        scheduler.start.assert_awaited_once()


class TestTransitions:
    async def test_sign_in_starts(self, scheduler, identity):
        hub = SessionEventHub()
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()

        await hub.sign_in(identity)

        assert controller.state == SessionState.ACTIVE
        scheduler.start.assert_awaited_once()

    async def test_duplicate_sign_in_ignored(self, scheduler, identity):
        hub = SessionEventHub()
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()

        await hub.sign_in(identity)
        await hub.sign_in(identity)

        scheduler.start.assert_awaited_once()

    async def test_sign_out_stops(self, scheduler, hub):
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()

        await hub.sign_out()

        assert controller.state == SessionState.IDLE
        scheduler.stop.assert_awaited_once()

    async def test_sign_out_while_idle_ignored(self, scheduler):
        controller = SessionLifecycleController(scheduler, SessionEventHub())
        await controller.handle_event(SessionEvent(SessionEventType.SIGNED_OUT))
        scheduler.stop.assert_not_awaited()

    async def test_sign_in_after_sign_out_restarts(self, scheduler, hub, identity):
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()
        await hub.sign_out()
        await hub.sign_in(identity)
        assert controller.state == SessionState.ACTIVE
        assert scheduler.start.await_count == 2


class TestTokenRefresh:
    async def test_refresh_reloads_then_syncs(self, scheduler, hub):
        order = []
        scheduler.trigger_manual_sync.side_effect = lambda: order.append("sync")

        async def reload(event):
            order.append(("reload", event.identity.access_token))

        controller = SessionLifecycleController(scheduler, hub, on_token_refreshed=reload)
        await controller.initialize()

        await hub.refresh_token("access-token-2")

        assert order == [("reload", "access-token-2"), "sync"]
        assert hub.current_identity() == Identity("u1", "access-token-2")
        assert controller.state == SessionState.ACTIVE
        assert scheduler.start.await_count == 1

    async def test_sync_hook_accepts_plain_callable(self, scheduler, hub):
        calls = []
        controller = SessionLifecycleController(scheduler, hub, on_token_refreshed=calls.append)
        await controller.initialize()
        await hub.refresh_token("t2")
        assert len(calls) == 1
        scheduler.trigger_manual_sync.assert_awaited_once()

    async def test_failing_reload_still_syncs(self, scheduler, hub):
        def reload(event):
            raise OSError("cache unreadable")

        controller = SessionLifecycleController(scheduler, hub, on_token_refreshed=reload)
        await controller.initialize()
        await hub.refresh_token("t2")
        scheduler.trigger_manual_sync.assert_awaited_once()

    async def test_refresh_while_idle_ignored(self, scheduler, identity):
        controller = SessionLifecycleController(scheduler, SessionEventHub())
        await controller.initialize()
        await controller.handle_event(SessionEvent(SessionEventType.TOKEN_REFRESHED, identity))
        scheduler.trigger_manual_sync.assert_not_awaited()
        scheduler.start.assert_not_awaited()


class TestClose:
    async def test_close_stops_and_unsubscribes(self, scheduler, hub, identity):
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()

        await controller.close()

        scheduler.stop.assert_awaited_once()
        assert controller.state == SessionState.IDLE
        await hub.sign_in(identity)
        scheduler.start.assert_awaited_once()

    async def test_close_without_stopping(self, scheduler, hub):
        controller = SessionLifecycleController(scheduler, hub)
        await controller.initialize()
        await controller.close(stop_scheduler=False)
        scheduler.stop.assert_not_awaited()


class TestWithRealScheduler:
    async def test_sign_out_resets_status(self, hub, clock):
        class Job:
            async def run(self):
                return SyncJobResult(success=True, synced=2)

        scheduler = SyncScheduler(Job(), clock=clock)
        controller = SessionLifecycleController(scheduler, hub)

        await controller.initialize()
        assert scheduler.get_status().last_sync_time == clock()

        await hub.sign_out()
        assert scheduler.is_running is False
        assert scheduler.get_status().last_sync_time is None
