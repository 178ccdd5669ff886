#!/usr/bin/env python3
"""
Wellness Data Sync Daemon

Mirrors the app's local cache into the remote store while a user is signed
in. Designed to run as a systemd user service next to the desktop app.

Features:
- Sync on sign-in, every sync.interval_seconds, on token refresh and on exit
- At most one sync pass at a time
- Per-domain failure isolation
- Single instance enforcement (lock file)
- Graceful shutdown handling
- Status snapshot in sync_state.json

Usage:
    python -m services.sync                  # Run daemon
    python -m services.sync --status         # Check if running, show last sync
    python -m services.sync --stop           # Stop running daemon
    python -m services.sync --list-domains   # List synced domains
    python -m services.sync --sync-now       # Run one sync pass and exit

Systemd:
    systemctl --user start wellness-sync
    systemctl --user status wellness-sync
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config_manager import ConfigManager  # noqa: E402
from core.errors import ConfigValidationError, DomainConfigError, format_error, format_success  # noqa: E402
from core.paths import SYNC_STATE_FILE  # noqa: E402
from services.base.daemon import BaseDaemon, SingleInstance  # noqa: E402
from services.sync.domains import load_domains  # noqa: E402
from services.sync.engine import SyncEngine, build_engine  # noqa: E402
from services.sync.session_events import FileSessionWatcher, SessionEventHub  # noqa: E402
from services.sync.settings import SyncSettings  # noqa: E402

logger = logging.getLogger(__name__)


def write_state_file(state: dict[str, Any], path: Path = SYNC_STATE_FILE) -> None:
    """Write state to path atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file then rename (atomic on POSIX)
    temp_fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix="sync_state_", dir=path.parent)
    try:
        with os.fdopen(temp_fd, "w") as f:
            json.dump(state, f, indent=2, default=str)
        Path(temp_path).replace(path)
    except Exception:
        try:
            Path(temp_path).unlink()
        except OSError as exc:
            logger.debug("OS operation failed: %s", exc)
        raise


def read_state_file(path: Path = SYNC_STATE_FILE) -> dict[str, Any] | None:
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError):
        return None


def resolve_state_file(config_path: Optional[Path] = None) -> Path:
    """State file named by config.json, without requiring a valid remote section."""
    return Path(ConfigManager(config_path).get("sync", "state_file")).expanduser()


def load_settings(config_path: Optional[Path] = None) -> SyncSettings:
    """Load and validate config.json.

    Raises:
        ConfigValidationError: If the config is invalid
    """
    config = ConfigManager(config_path)
    config.require_valid()
    return SyncSettings.from_config(config)


class SyncDaemon(BaseDaemon):
    """Background sync daemon."""

    name = "wellness-sync"
    description = "Interpreter Wellness Data Sync Daemon"

    def __init__(
        self, verbose: bool = False, config_path: Optional[Path] = None, state_file: Optional[Path] = None
    ):
        super().__init__(verbose=verbose)
        self.config_path = config_path
        self.state_file = state_file
        self.settings: SyncSettings | None = None
        self.engine: SyncEngine | None = None
        self.watcher: FileSessionWatcher | None = None
        self.is_running = False
        self._state_writer_task: asyncio.Task | None = None

    # ==================== Lifecycle ====================

    async def startup(self):
        """Initialize daemon resources."""
        await super().startup()

        self.settings = load_settings(self.config_path)
        if self.state_file is None:
            self.state_file = self.settings.state_file

        hub = SessionEventHub()
        self.watcher = FileSessionWatcher(hub, self.settings.session_path, self.settings.session_poll_seconds)
        # Restored session must be visible before the controller derives its state
        self.watcher.prime()

        self.engine = build_engine(
            self.settings,
            hub,
            shutdown_hooks=self.shutdown_hooks,
            on_token_refreshed=self._reload_cache,
        )
        logger.info(f"Syncing {len(self.engine.domains)} domains to {self.settings.remote_url}")

        self.is_running = True
        await self.engine.controller.initialize()
        self.watcher.start()
        self._state_writer_task = asyncio.create_task(self._state_writer_loop())

    async def run_daemon(self):
        """Main daemon loop - wait for shutdown."""
        await self._shutdown_event.wait()

    async def shutdown(self):
        """Stop the daemon gracefully (BaseDaemon interface)."""
        if not self.is_running:
            return

        if self._state_writer_task:
            self._state_writer_task.cancel()
            try:
                await self._state_writer_task
            except asyncio.CancelledError:
                pass

        if self.watcher:
            await self.watcher.stop()

        if self.engine:
            # The unload flush was spawned by the shutdown hooks
            await self.engine.scheduler.drain(timeout=self.settings.unload_grace_seconds)
            self._write_state()
            await self.engine.close()

        self.is_running = False
        await super().shutdown()
        logger.info("Sync daemon stopped")

    def _reload_cache(self, event) -> None:
        """Pick up data the app wrote while the token was being refreshed."""
        reload = getattr(self.engine.cache, "reload", None) if self.engine else None
        if reload is not None:
            reload()

    # ==================== State ====================

    def get_state(self) -> dict[str, Any]:
        state = self.engine.status.to_dict() if self.engine else {}
        state.update(
            {
                "session": self.engine.controller.state.value if self.engine else "idle",
                "domains": [d.name for d in self.engine.domains] if self.engine else [],
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        return state

    def _write_state(self) -> None:
        if self.state_file is None:
            return
        try:
            write_state_file(self.get_state(), self.state_file)
        except OSError as e:
            logger.warning(f"Failed to write sync state: {e}")

    async def _state_writer_loop(self):
        """Periodically write sync state to sync_state.json."""
        interval = self.settings.state_write_seconds if self.settings else 30
        while not self._shutdown_event.is_set():
            self._write_state()
            await asyncio.sleep(interval)

    # ==================== CLI ====================

    @classmethod
    def create_argument_parser(cls) -> argparse.ArgumentParser:
        """Create argument parser with sync-specific arguments."""
        parser = super().create_argument_parser()
        parser.add_argument(
            "--config",
            type=Path,
            default=None,
            help="Path to config.json",
        )
        parser.add_argument(
            "--list-domains",
            action="store_true",
            help="List synced domains and exit",
        )
        parser.add_argument(
            "--sync-now",
            action="store_true",
            help="Run one sync pass with the current session and exit",
        )
        return parser

    @classmethod
    def handle_status(cls, parsed: Optional[argparse.Namespace] = None) -> int:
        """Handle --status command. Returns exit code."""
        pid = SingleInstance(cls.name).get_running_pid()
        print(f"{cls.name} is running (PID: {pid})" if pid else f"{cls.name} is not running")

        state_file = resolve_state_file(parsed.config if parsed else None)
        state = read_state_file(state_file)
        if state:
            print(f"   Session: {state.get('session', 'unknown')}")
            print(f"   Last sync: {state.get('last_sync_label', 'Never synced')}")
            last = state.get("last_result")
            if last:
                print(f"   Last result: {last.get('synced', 0)} synced, {last.get('failed', 0)} failed")
            print(f"   Updated: {state.get('updated_at')}")

        return 0 if pid else 1

    @classmethod
    def handle_extra_args(cls, parsed: argparse.Namespace) -> Optional[int]:
        if parsed.list_domains:
            return list_domains(parsed.config)
        if parsed.sync_now:
            return asyncio.run(sync_now(parsed.config))
        return None

    @classmethod
    def from_args(cls, parsed: argparse.Namespace) -> "SyncDaemon":
        return cls(verbose=parsed.verbose, config_path=parsed.config)


def list_domains(config_path: Optional[Path] = None) -> int:
    """Print the domain table without starting the daemon."""
    try:
        config = ConfigManager(config_path)
        domains = load_domains(config.get("sync", "domains_file"))
    except DomainConfigError as e:
        print(format_error("Invalid domain table", error=e.message, code=e.code))
        return 1

    print("Synced Domains")
    print("=" * 60)
    for domain in domains:
        print(domain.name)
        for source in domain.sources:
            print(f"   {source.cache_key} -> {source.table} ({source.on_conflict})")
    print()
    print(f"{len(domains)} domains")
    return 0


async def sync_now(config_path: Optional[Path] = None) -> int:
    """Run one manual pass as the user in the session file."""
    try:
        settings = load_settings(config_path)
    except ConfigValidationError as e:
        print(format_error("Invalid config", error="; ".join(e.errors), code=e.code))
        return 1

    hub = SessionEventHub()
    FileSessionWatcher(hub, settings.session_path).prime()

    try:
        engine = build_engine(settings, hub)
    except DomainConfigError as e:
        print(format_error("Invalid domain table", error=e.message, code=e.code))
        return 1

    try:
        result = await engine.scheduler.trigger_manual_sync()
    finally:
        await engine.close()

    if not result.success:
        print(format_error("Sync failed", error=result.error))
        return 1

    data: dict[str, Any] = {"synced": result.synced, "failed": result.failed}
    if result.failed_domains:
        data["failed domains"] = ", ".join(result.failed_domains)
    print(format_success("Sync complete", data=data))
    return 0 if result.failed == 0 else 1


def main():
    """Main entry point."""
    SyncDaemon.main()


if __name__ == "__main__":
    main()
