"""The fan-out sync pass.

SyncJob resolves the identity once, runs every registered DomainSyncTask
concurrently and waits for all of them to settle before aggregating. A task
that raises is counted as failed; it never stops the others.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from core.errors import ErrorCodes
from core.protocols import LocalCache, RemoteUpserter, SessionProvider
from services.sync.domains import DomainConfig
from services.sync.tasks import DomainSyncTask, utc_now
from services.sync.types import NOT_AUTHENTICATED, Identity, SyncAttempt, SyncJobResult

logger = logging.getLogger(__name__)

NO_TASKS = "no sync tasks registered"


class SyncJob:
    """One reconciliation pass over all domains.

    Args:
        tasks: Registered domain tasks
        session: Resolves the identity the pass runs as
        task_timeout: Per-task timeout in seconds, None for no bound
    """

    def __init__(self, tasks: Sequence[DomainSyncTask], session: SessionProvider, task_timeout: float | None = None):
        self.tasks = list(tasks)
        self.session = session
        self.task_timeout = task_timeout

    @classmethod
    def from_domains(
        cls,
        domains: Sequence[DomainConfig],
        cache: LocalCache,
        remote: RemoteUpserter,
        session: SessionProvider,
        task_timeout: float | None = None,
        clock: Callable = utc_now,
    ) -> "SyncJob":
        """Build one DomainSyncTask per domain of the table."""
        tasks = [DomainSyncTask(domain, cache, remote, clock=clock) for domain in domains]
        return cls(tasks, session, task_timeout=task_timeout)

    @property
    def domain_names(self) -> list[str]:
        return [task.name for task in self.tasks]

    async def _run_task(self, task: DomainSyncTask, identity: Identity) -> SyncAttempt:
        try:
            return await task.run_with_timeout(identity, self.task_timeout)
        except Exception as e:
            logger.warning(f"Sync task {task.name} raised: {e}")
            return SyncAttempt(task.name, success=False, error=str(e) or type(e).__name__)

    async def run(self) -> SyncJobResult:
        """Run every task once.

        Returns:
            success=True with counts when the pass ran, otherwise success=False
            with a top-level error (not authenticated, nothing registered,
            identity lookup failure)
        """
        if not self.tasks:
            logger.error(f"Sync pass cannot start [{ErrorCodes.NO_TASKS}]: {NO_TASKS}")
            return SyncJobResult.rejected(NO_TASKS)

        try:
            identity = await self.session.get_identity()
        except Exception as e:
            logger.exception(f"Identity lookup failed: {e}")
            return SyncJobResult.rejected(f"identity lookup failed: {e}")

        if identity is None:
            logger.info(f"Sync pass skipped [{ErrorCodes.NOT_AUTHENTICATED}]")
            return SyncJobResult.rejected(NOT_AUTHENTICATED)

        attempts = await asyncio.gather(*(self._run_task(task, identity) for task in self.tasks))
        result = SyncJobResult.from_attempts(list(attempts))

        logger.info(f"Data sync completed: {result.synced} items synced, {result.failed} failed")
        if result.failed_domains:
            logger.info(f"Failed domains: {', '.join(result.failed_domains)}")
        return result
