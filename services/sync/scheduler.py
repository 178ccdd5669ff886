"""Sync Scheduler - single-flight sync passes on a recurring timer.

Provides:
- SyncScheduler: owns SyncStatus, the single-flight guard, the APScheduler
  interval job and the unload-time flush

Triggers (start, timer, manual, unload) all go through run_pass(). The
guard is checked and set before the first await, so two triggers arriving
in the same loop iteration can never both start a pass.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.errors import ErrorCodes
from services.base.daemon import ShutdownHooks
from services.sync.job import SyncJob
from services.sync.tasks import utc_now
from services.sync.types import SYNC_IN_PROGRESS, SyncJobResult, SyncStatus

logger = logging.getLogger(__name__)

TIMER_JOB_ID = "sync_pass"
DEFAULT_INTERVAL_SECONDS = 300


class SyncScheduler:
    """Serializes sync passes and owns the recurring trigger.

    Args:
        job: The pass to run
        interval_seconds: Period of the recurring timer
        shutdown_hooks: Registry the unload flush is registered with while started
        clock: Returns the current (UTC) time for last_sync_time
    """

    def __init__(
        self,
        job: SyncJob,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        shutdown_hooks: ShutdownHooks | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.job = job
        self.interval_seconds = interval_seconds
        self.shutdown_hooks = shutdown_hooks
        self.clock = clock
        self.scheduler: AsyncIOScheduler | None = None
        self._status = SyncStatus()
        self._running = False
        # A pass may outlive stop(); it keeps the guard until it settles
        self._pass_active = False
        self._pass_generation = 0
        self._pass_settled = asyncio.Event()
        self._pass_settled.set()
        self._generation = 0
        self._background: set[asyncio.Task] = set()

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create a new APScheduler instance."""
        return AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine missed runs
                "max_instances": 1,
                "misfire_grace_time": max(1, int(self.interval_seconds)),
            },
        )

    # ==================== Passes ====================

    async def run_pass(self, trigger: str = "manual") -> SyncJobResult:
        """Run one pass unless another is in flight.

        Args:
            trigger: What requested the pass (for logs)

        Returns:
            The job result, or a rejection if a pass is already running
        """
        if self._pass_active:
            logger.info(f"Sync already in progress, {trigger} request rejected [{ErrorCodes.SYNC_IN_PROGRESS}]")
            return SyncJobResult.rejected(SYNC_IN_PROGRESS)

        self._pass_active = True
        self._pass_settled.clear()
        self._status.in_progress = True
        generation = self._pass_generation = self._generation
        logger.debug(f"Sync pass started ({trigger})")

        try:
            result = await self.job.run()
        except Exception as e:
            logger.exception(f"Sync pass failed: {e}")
            result = SyncJobResult.rejected(f"sync failed: {e}")
        finally:
            self._pass_active = False
            self._pass_settled.set()
            if generation == self._generation:
                self._status.in_progress = False

        if generation != self._generation:
            logger.info(f"Sync pass ({trigger}) settled after stop, status not updated")
        elif result.success:
            self._status.last_sync_time = self.clock()
            self._status.last_result = result

        return result

    def _spawn(self, trigger: str) -> asyncio.Task:
        """Run a pass in the background, tracked until it settles."""
        task = asyncio.create_task(self.run_pass(trigger), name=f"sync-{trigger}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _on_timer(self) -> None:
        # Spawned rather than awaited so a scheduler shutdown never cancels a pass
        self._spawn("timer")

    def flush_on_unload(self) -> None:
        """Best-effort final pass. Fire-and-forget; the result is discarded."""
        logger.info("Flushing local data before exit")
        self._spawn("unload")

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for background passes to settle.

        Returns:
            True if nothing is left running
        """
        pending = {t for t in self._background if not t.done()}
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} sync pass(es) still running after {timeout}s")
        return not still_pending

    async def _wait_for_stale_pass(self) -> None:
        """Wait until no pass from before the last stop() holds the guard."""
        while self._pass_active and self._pass_generation != self._generation:
            logger.info("Waiting for the previous session's sync pass to settle")
            await self._pass_settled.wait()

    # ==================== Lifecycle ====================

    async def start(self) -> SyncJobResult | None:
        """Arm the timer and unload hook, then run one pass immediately.

        A pass left over from the previous session is awaited first, so the
        immediate pass is never rejected because of it.

        Returns:
            Result of the immediate pass, or None if already started or
            stopped again while waiting
        """
        if self._running:
            logger.debug("Sync scheduler already running")
            return None

        self._running = True
        self.scheduler = self._create_scheduler()
        self.scheduler.add_job(
            self._on_timer,
            "interval",
            seconds=self.interval_seconds,
            id=TIMER_JOB_ID,
            name="Data sync",
            replace_existing=True,
        )
        self.scheduler.start()

        if self.shutdown_hooks is not None:
            self.shutdown_hooks.register(self.flush_on_unload)

        logger.info(f"Sync scheduler started (every {self.interval_seconds}s)")

        generation = self._generation
        await self._wait_for_stale_pass()
        if generation != self._generation:
            logger.info("Sync scheduler stopped before the start pass could run")
            return None
        return await self.run_pass("start")

    async def stop(self) -> None:
        """Cancel the timer and reset status. An in-flight pass is not awaited."""
        self._generation += 1

        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None

        if self.shutdown_hooks is not None:
            self.shutdown_hooks.unregister(self.flush_on_unload)

        if self._running:
            logger.info("Sync scheduler stopped")
        self._running = False
        self._status = SyncStatus()

    async def trigger_manual_sync(self) -> SyncJobResult:
        """Run a pass now and return its result to the caller."""
        logger.info("Manual sync triggered")
        return await self.run_pass("manual")

    def get_status(self) -> SyncStatus:
        """Snapshot of the current status."""
        return self._status.copy()

    @property
    def is_running(self) -> bool:
        """Whether the timer is armed."""
        return self._running
