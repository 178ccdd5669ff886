"""Session lifecycle controller.

Two-state machine driven by session events:

    Idle   --signed-in-------> Active   (scheduler.start)
    Active --token-refreshed-> Active   (reload hook, then a manual sync)
    Active --signed-out------> Idle     (scheduler.stop)

The scheduler is never started from Idle by anything but a signed-in event
or a session restored at start-up.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Optional

from core.protocols import SessionProvider
from services.sync.scheduler import SyncScheduler
from services.sync.types import SessionEvent, SessionEventType

logger = logging.getLogger(__name__)

ReloadHook = Callable[[SessionEvent], Optional[Awaitable[None]]]


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class SessionLifecycleController:
    """Starts and stops the scheduler as the user signs in and out.

    Args:
        scheduler: Scheduler to drive
        session: Event source and identity provider
        on_token_refreshed: Optional data-reload hook run before the
            post-refresh sync
    """

    def __init__(
        self,
        scheduler: SyncScheduler,
        session: SessionProvider,
        on_token_refreshed: ReloadHook | None = None,
    ):
        self.scheduler = scheduler
        self.session = session
        self.on_token_refreshed = on_token_refreshed
        self._state = SessionState.IDLE
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    async def initialize(self) -> SessionState:
        """Subscribe to session events and derive the initial state.

        A restored session enters Active immediately and starts the scheduler.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.session.subscribe(self.handle_event)

        identity = self.session.current_identity()
        if identity is not None and self._state == SessionState.IDLE:
            logger.info(f"Existing session found for user {identity.user_id}, starting sync")
            self._state = SessionState.ACTIVE
            await self.scheduler.start()
        elif identity is None:
            logger.info("No session, waiting for sign-in")

        return self._state

    async def handle_event(self, event: SessionEvent) -> None:
        if event.type == SessionEventType.SIGNED_IN:
            if self._state == SessionState.ACTIVE:
                logger.debug("Signed-in while already active, ignoring")
                return
            self._state = SessionState.ACTIVE
            await self.scheduler.start()

        elif event.type == SessionEventType.SIGNED_OUT:
            if self._state == SessionState.IDLE:
                return
            self._state = SessionState.IDLE
            await self.scheduler.stop()

        elif event.type == SessionEventType.TOKEN_REFRESHED:
            if self._state != SessionState.ACTIVE:
                logger.debug("Token refreshed while idle, ignoring")
                return
            await self._run_reload_hook(event)
            await self.scheduler.trigger_manual_sync()

    async def _run_reload_hook(self, event: SessionEvent) -> None:
        if self.on_token_refreshed is None:
            return
        try:
            result = self.on_token_refreshed(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Data reload after token refresh failed: {e}")

    async def close(self, stop_scheduler: bool = True) -> None:
        """Unsubscribe from session events and optionally stop the scheduler."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if stop_scheduler and self._state == SessionState.ACTIVE:
            self._state = SessionState.IDLE
            await self.scheduler.stop()
