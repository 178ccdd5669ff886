"""Value types shared across the sync engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

# Job-level error messages
SYNC_IN_PROGRESS = "sync already in progress"
NOT_AUTHENTICATED = "not authenticated"


@dataclass(frozen=True)
class Identity:
    """The authenticated user a sync pass runs as."""

    user_id: str
    access_token: str | None = None

    def __repr__(self) -> str:
        # Never leak the bearer credential into logs
        return f"Identity(user_id={self.user_id!r})"


class SessionEventType(str, Enum):
    SIGNED_IN = "signed-in"
    SIGNED_OUT = "signed-out"
    TOKEN_REFRESHED = "token-refreshed"


@dataclass(frozen=True)
class SessionEvent:
    """A tagged authentication event. identity is None for signed-out."""

    type: SessionEventType
    identity: Identity | None = None


@dataclass
class SyncAttempt:
    """Outcome of one DomainSyncTask invocation."""

    domain: str
    success: bool
    synced: int = 0
    error: str | None = None


@dataclass
class SyncJobResult:
    """Aggregate over every SyncAttempt of one pass.

    success is True when the pass ran to completion, even if some domains
    failed; failed counts those domains.
    """

    success: bool
    synced: int = 0
    failed: int = 0
    error: str | None = None
    failed_domains: list[str] = field(default_factory=list)

    @classmethod
    def rejected(cls, error: str) -> "SyncJobResult":
        """A pass that could not start."""
        return cls(success=False, error=error)

    @classmethod
    def from_attempts(cls, attempts: list[SyncAttempt]) -> "SyncJobResult":
        failed = [a.domain for a in attempts if not a.success]
        return cls(
            success=True,
            synced=sum(a.synced for a in attempts if a.success),
            failed=len(failed),
            failed_domains=failed,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "synced": self.synced,
            "failed": self.failed,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.failed_domains:
            data["failed_domains"] = list(self.failed_domains)
        return data


@dataclass
class SyncStatus:
    """Process-wide sync status, owned by SyncScheduler."""

    in_progress: bool = False
    last_sync_time: datetime | None = None
    last_result: SyncJobResult | None = None

    def copy(self) -> "SyncStatus":
        return replace(self, last_result=replace(self.last_result) if self.last_result else None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "in_progress": self.in_progress,
            "last_sync_time": self.last_sync_time.isoformat() if self.last_sync_time else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
