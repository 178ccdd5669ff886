"""Session events.

SessionEventHub is the in-process session provider: it remembers the
current identity and fans authentication events out to subscribers.
FileSessionWatcher feeds the hub from the session file the desktop sign-in
flow writes.

Usage:
    hub = SessionEventHub()
    unsubscribe = hub.subscribe(controller.handle_event)

    await hub.sign_in(Identity("u1", "token"))
    await hub.refresh_token("new-token")
    await hub.sign_out()
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Optional

from core.paths import SESSION_FILE
from services.sync.types import Identity, SessionEvent, SessionEventType

logger = logging.getLogger(__name__)

SessionHandler = Callable[[SessionEvent], Optional[Awaitable[None]]]


class SessionEventHub:
    """Current identity plus a publish/subscribe channel for session events."""

    def __init__(self, identity: Identity | None = None):
        self._identity = identity
        self._handlers: list[SessionHandler] = []

    def restore(self, identity: Identity | None) -> None:
        """Set a restored credential without emitting an event."""
        self._identity = identity

    def current_identity(self) -> Identity | None:
        return self._identity

    async def get_identity(self) -> Identity | None:
        return self._identity

    def subscribe(self, handler: SessionHandler) -> Callable[[], None]:
        """Register handler. Returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, event: SessionEvent) -> None:
        """Update the current identity from event, then notify every handler.

        Handlers run in subscription order; a failing handler is logged and
        does not affect the others or the publisher.
        """
        if event.type == SessionEventType.SIGNED_OUT:
            self._identity = None
        elif event.identity is not None:
            self._identity = event.identity

        logger.info(f"Session event: {event.type.value}")

        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Session handler failed on {event.type.value}: {e}")

    async def sign_in(self, identity: Identity) -> None:
        await self.publish(SessionEvent(SessionEventType.SIGNED_IN, identity))

    async def sign_out(self) -> None:
        await self.publish(SessionEvent(SessionEventType.SIGNED_OUT))

    async def refresh_token(self, access_token: str) -> None:
        """Publish token-refreshed for the current user with a new token."""
        if self._identity is None:
            logger.warning("Token refresh without a signed-in user, ignoring")
            return
        identity = Identity(self._identity.user_id, access_token)
        await self.publish(SessionEvent(SessionEventType.TOKEN_REFRESHED, identity))


def read_session_file(path: Path) -> Identity | None:
    """Read the identity stored in a session file.

    Accepts ``{"user_id": ..., "access_token": ...}`` or the auth client's
    ``{"user": {"id": ...}, "access_token": ...}`` layout.

    Returns:
        The identity, or None if the file is missing, empty or unusable
    """
    try:
        if not path.exists():
            return None
        content = path.read_text().strip()
        if not content:
            return None
        data: Any = json.loads(content)
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot read session file {path}: {e}")
        return None

    if not isinstance(data, dict):
        return None

    user_id = data.get("user_id")
    if user_id is None and isinstance(data.get("user"), dict):
        user_id = data["user"].get("id")
    if not user_id:
        return None

    token = data.get("access_token")
    return Identity(str(user_id), token if isinstance(token, str) else None)


class FileSessionWatcher:
    """Polls the session file and publishes the matching hub events.

    Args:
        hub: Hub to publish into
        path: Session file location
        poll_seconds: Polling period
    """

    def __init__(self, hub: SessionEventHub, path: Path = SESSION_FILE, poll_seconds: float = 5.0):
        self.hub = hub
        self.path = Path(path)
        self.poll_seconds = poll_seconds
        self._last: Identity | None = None
        self._task: asyncio.Task | None = None

    def prime(self) -> Identity | None:
        """Restore the file's identity into the hub without emitting events."""
        self._last = read_session_file(self.path)
        self.hub.restore(self._last)
        if self._last:
            logger.info(f"Restored session for user {self._last.user_id}")
        return self._last

    async def check(self) -> None:
        """Compare the file against the last seen identity and publish changes."""
        current = read_session_file(self.path)
        previous = self._last
        self._last = current

        if current == previous:
            return

        if previous is None:
            await self.hub.sign_in(current)
        elif current is None:
            await self.hub.sign_out()
        elif current.user_id == previous.user_id:
            await self.hub.publish(SessionEvent(SessionEventType.TOKEN_REFRESHED, current))
        else:
            await self.hub.sign_out()
            await self.hub.sign_in(current)

    async def _poll_loop(self) -> None:
        logger.info(f"Watching session file {self.path} (every {self.poll_seconds}s)")
        while True:
            await asyncio.sleep(self.poll_seconds)
            try:
                await self.check()
            except Exception as e:
                logger.error(f"Session watcher error: {e}")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
