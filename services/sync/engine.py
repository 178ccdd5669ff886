"""Wiring for one sync engine instance.

Builds the explicitly constructed object graph: cache and remote adapters,
one task per domain, the job, the scheduler, the status accessor and the
lifecycle controller. Nothing here is a process-wide singleton.
"""

import logging
from dataclasses import dataclass

from core.protocols import LocalCache, RemoteUpserter
from services.base.daemon import ShutdownHooks
from services.sync.domains import DomainConfig, load_domains
from services.sync.job import SyncJob
from services.sync.lifecycle import ReloadHook, SessionLifecycleController
from services.sync.local_cache import LocalCacheStore
from services.sync.remote_store import RemoteStore
from services.sync.scheduler import SyncScheduler
from services.sync.session_events import SessionEventHub
from services.sync.settings import SyncSettings
from services.sync.status import SyncStatusAggregator

logger = logging.getLogger(__name__)


@dataclass
class SyncEngine:
    """A fully wired engine."""

    domains: list[DomainConfig]
    cache: LocalCache
    remote: RemoteUpserter
    job: SyncJob
    scheduler: SyncScheduler
    status: SyncStatusAggregator
    controller: SessionLifecycleController

    async def close(self) -> None:
        """Detach from session events, stop the scheduler and release the HTTP client."""
        await self.controller.close(stop_scheduler=True)
        close = getattr(self.remote, "close", None)
        if close is not None:
            await close()


def build_engine(
    settings: SyncSettings,
    session: SessionEventHub,
    shutdown_hooks: ShutdownHooks | None = None,
    cache: LocalCache | None = None,
    remote: RemoteUpserter | None = None,
    domains: list[DomainConfig] | None = None,
    on_token_refreshed: ReloadHook | None = None,
) -> SyncEngine:
    """Assemble an engine from settings.

    Args:
        settings: Typed configuration
        session: Session provider the controller subscribes to
        shutdown_hooks: Registry for the unload flush
        cache: Override the local cache (default: LocalCacheStore at settings.cache_path)
        remote: Override the remote store (default: RemoteStore at settings.remote_url)
        domains: Override the domain table (default: load_domains(settings.domains_file))
        on_token_refreshed: Data-reload hook run on token refresh

    Raises:
        DomainConfigError: If the domain table is invalid
    """
    domains = domains if domains is not None else load_domains(settings.domains_file)
    cache = cache if cache is not None else LocalCacheStore(settings.cache_path)
    if remote is None:
        remote = RemoteStore(settings.remote_url, settings.anon_key, timeout=settings.remote_timeout)

    job = SyncJob.from_domains(domains, cache, remote, session, task_timeout=settings.task_timeout)
    scheduler = SyncScheduler(job, interval_seconds=settings.interval_seconds, shutdown_hooks=shutdown_hooks)
    controller = SessionLifecycleController(scheduler, session, on_token_refreshed=on_token_refreshed)

    logger.debug(f"Sync engine built with {len(domains)} domains")
    return SyncEngine(
        domains=domains,
        cache=cache,
        remote=remote,
        job=job,
        scheduler=scheduler,
        status=SyncStatusAggregator(scheduler),
        controller=controller,
    )
