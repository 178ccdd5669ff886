"""Typed view of the sync-related config sections."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.config_manager import CONFIG_SCHEMA
from core.paths import LOCAL_CACHE_FILE, SESSION_FILE, SYNC_STATE_FILE


def _default(section: str, key: str) -> Any:
    return CONFIG_SCHEMA[section][key][2]


@dataclass
class SyncSettings:
    """Settings for one sync engine instance.

    Attributes:
        remote_url: Base URL of the remote store
        anon_key: Public API key sent with every request
        remote_timeout: HTTP timeout in seconds
        interval_seconds: Period of the recurring timer
        task_timeout: Per-domain timeout in seconds, None to disable
        unload_grace_seconds: How long shutdown waits for the unload flush
        state_write_seconds: Period of the status snapshot writer
        domains_file: Domain table override, None for the bundled one
        state_file: Status snapshot written by the daemon
        cache_path: Local cache file
        session_path: Session file written by the sign-in flow
        session_poll_seconds: Session file polling period
    """

    remote_url: str = ""
    anon_key: str = ""
    remote_timeout: float = _default("remote", "timeout_seconds")
    interval_seconds: float = _default("sync", "interval_seconds")
    task_timeout: float | None = _default("sync", "task_timeout_seconds")
    unload_grace_seconds: float = _default("sync", "unload_grace_seconds")
    state_write_seconds: float = _default("sync", "state_write_seconds")
    domains_file: Path | None = None
    state_file: Path = SYNC_STATE_FILE
    cache_path: Path = LOCAL_CACHE_FILE
    session_path: Path = SESSION_FILE
    session_poll_seconds: float = _default("session", "poll_seconds")

    @classmethod
    def from_config(cls, config) -> "SyncSettings":
        """Create SyncSettings from a ConfigManager (or anything with the same get())."""
        domains_file = config.get("sync", "domains_file")
        return cls(
            remote_url=config.get("remote", "url") or "",
            anon_key=config.get("remote", "anon_key") or "",
            remote_timeout=config.get("remote", "timeout_seconds"),
            interval_seconds=config.get("sync", "interval_seconds"),
            task_timeout=config.get("sync", "task_timeout_seconds"),
            unload_grace_seconds=config.get("sync", "unload_grace_seconds"),
            state_write_seconds=config.get("sync", "state_write_seconds"),
            domains_file=Path(domains_file).expanduser() if domains_file else None,
            state_file=Path(config.get("sync", "state_file")).expanduser(),
            cache_path=Path(config.get("cache", "path")).expanduser(),
            session_path=Path(config.get("session", "path")).expanduser(),
            session_poll_seconds=config.get("session", "poll_seconds"),
        )
