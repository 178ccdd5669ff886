"""Protocol definitions for sync engine collaborators.

The sync job and scheduler only depend on these structural interfaces, so
tests and alternative frontends can supply their own cache, remote store and
session source without subclassing anything.

Usage:
    from core.protocols import LocalCache, RemoteUpserter, SessionProvider

    def build_task(cache: LocalCache, remote: RemoteUpserter) -> DomainSyncTask:
        ...
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from services.sync.types import Identity, SessionEvent


@runtime_checkable
class LocalCache(Protocol):
    """Read access to the local key/value cache.

    Values are the raw serialized strings the app stored, or None when the
    key is absent.
    """

    def get_item(self, key: str) -> str | None:
        """Return the raw value stored under key, or None."""
        ...


@runtime_checkable
class RemoteUpserter(Protocol):
    """Insert-or-update of record batches into a remote table."""

    async def upsert(
        self,
        table: str,
        records: list[dict[str, Any]],
        conflict_key: str,
        access_token: str | None = None,
    ) -> None:
        """Upsert records, merging on the comma-separated conflict_key columns.

        access_token is the bearer token of the user the records belong to.

        Raises:
            RemoteStoreError: If the store rejects the batch or is unreachable
        """
        ...


@runtime_checkable
class SessionProvider(Protocol):
    """Source of the current identity and of authentication events."""

    def current_identity(self) -> "Identity | None":
        """Identity as last observed, without any I/O."""
        ...

    async def get_identity(self) -> "Identity | None":
        """Resolve the identity, possibly asking the auth backend."""
        ...

    def subscribe(self, handler: Callable[["SessionEvent"], Awaitable[None] | None]) -> Callable[[], None]:
        """Register a handler for session events.

        Returns:
            A callable that removes the handler again
        """
        ...

