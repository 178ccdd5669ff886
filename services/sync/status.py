"""Read-side accessor over the scheduler's SyncStatus."""

from datetime import datetime
from typing import Any

from services.sync.scheduler import SyncScheduler
from services.sync.tasks import utc_now
from services.sync.types import SyncStatus


class SyncStatusAggregator:
    """Exposes in-progress flag, last sync time and last result counts.

    Holds no state of its own; every call reads the scheduler.
    """

    def __init__(self, scheduler: SyncScheduler):
        self.scheduler = scheduler

    def get_status(self) -> SyncStatus:
        return self.scheduler.get_status()

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        status = self.get_status()
        data = status.to_dict()
        data["running"] = self.scheduler.is_running
        data["last_sync_label"] = format_last_sync(status.last_sync_time, now)
        return data

    def format_last_sync(self, now: datetime | None = None) -> str:
        return format_last_sync(self.get_status().last_sync_time, now)


def format_last_sync(last_sync_time: datetime | None, now: datetime | None = None) -> str:
    """Human label for the time since the last completed sync.

    Examples:
        >>> format_last_sync(None)
        'Never synced'
    """
    if last_sync_time is None:
        return "Never synced"

    seconds = ((now or utc_now()) - last_sync_time).total_seconds()
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{int(seconds // 60)} minutes ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)} hours ago"
    return f"{int(seconds // 86400)} days ago"
