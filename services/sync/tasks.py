"""Per-domain sync task.

One generic task moves a domain's cached values to the remote store. Every
failure (unreadable cache, malformed value, rejected upsert) is turned into
a failed SyncAttempt; nothing but cancellation escapes run().
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from core.errors import CacheReadError, ErrorCodes, SyncError
from core.protocols import LocalCache, RemoteUpserter
from services.sync.domains import DomainConfig, DomainSource, build_records
from services.sync.types import Identity, SyncAttempt

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DomainSyncTask:
    """Syncs every source of one domain.

    Args:
        domain: Domain description from the domain table
        cache: Local cache to read from
        remote: Remote store to upsert into
        clock: Returns the current (UTC) time
    """

    def __init__(self, domain: DomainConfig, cache: LocalCache, remote: RemoteUpserter, clock: Clock = utc_now):
        self.domain = domain
        self.cache = cache
        self.remote = remote
        self.clock = clock

    @property
    def name(self) -> str:
        return self.domain.name

    async def _read(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self.cache.get_item, key)
        except Exception as e:
            raise CacheReadError(f"Cannot read {key} from local cache: {e}") from e

    async def _sync_source(self, source: DomainSource, identity: Identity) -> int:
        """Sync one source. Returns the number of records written."""
        raw = await self._read(source.cache_key)
        if raw is None or not raw.strip():
            return 0

        records = build_records(source, raw, identity, self.clock())
        if not records:
            return 0

        await self.remote.upsert(source.table, records, source.on_conflict, access_token=identity.access_token)
        return len(records)

    async def run(self, identity: Identity) -> SyncAttempt:
        """Sync the domain for identity.

        All sources run even if an earlier one fails; the attempt succeeds
        only when every source did.
        """
        synced = 0
        errors: list[str] = []

        for source in self.domain.sources:
            try:
                synced += await self._sync_source(source, identity)
            except SyncError as e:
                logger.warning(f"Failed to sync {self.name} ({source.cache_key}) [{e.code}]: {e.message}")
                errors.append(e.message)
            except Exception as e:
                logger.warning(f"Failed to sync {self.name} ({source.cache_key}): {e}")
                errors.append(f"{source.cache_key}: {e}")

        if errors:
            return SyncAttempt(self.name, success=False, synced=synced, error="; ".join(errors))

        if synced:
            logger.debug(f"Synced {synced} record(s) for {self.name}")
        return SyncAttempt(self.name, success=True, synced=synced)

    async def run_with_timeout(self, identity: Identity, timeout: float | None) -> SyncAttempt:
        """run() bounded by timeout seconds (None for no bound)."""
        if timeout is None:
            return await self.run(identity)
        try:
            return await asyncio.wait_for(self.run(identity), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Sync of {self.name} timed out after {timeout}s [{ErrorCodes.TIMEOUT}]")
            return SyncAttempt(self.name, success=False, error=f"timed out after {timeout}s")
