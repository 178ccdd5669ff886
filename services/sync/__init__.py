"""
Local/remote data sync engine.

Mirrors the app's locally cached user data into the remote store, driven by
session events, a recurring timer, manual requests and process exit.

Components:
- SyncScheduler: single-flight passes, recurring timer, unload flush
- SessionLifecycleController: starts/stops the scheduler on sign-in/out
- SyncJob: concurrent fan-out over every domain
- DomainSyncTask: one domain, cache -> remote
- SyncStatusAggregator: read-only status for indicators
"""

from services.sync.job import SyncJob
from services.sync.lifecycle import SessionLifecycleController, SessionState
from services.sync.scheduler import SyncScheduler
from services.sync.status import SyncStatusAggregator
from services.sync.tasks import DomainSyncTask
from services.sync.types import Identity, SessionEvent, SessionEventType, SyncAttempt, SyncJobResult, SyncStatus

__all__ = [
    "DomainSyncTask",
    "Identity",
    "SessionEvent",
    "SessionEventType",
    "SessionLifecycleController",
    "SessionState",
    "SyncAttempt",
    "SyncJob",
    "SyncJobResult",
    "SyncScheduler",
    "SyncStatus",
    "SyncStatusAggregator",
]
