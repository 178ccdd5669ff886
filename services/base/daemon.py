#!/usr/bin/env python3
"""
Base Daemon Infrastructure

Provides the foundation for the wellness sync daemons:
- SingleInstance: Lock file management for single-instance enforcement
- ShutdownHooks: Best-effort callbacks run when the process is going away
- BaseDaemon: Base class with CLI, signals, and lifecycle management

Usage:
    from services.base import BaseDaemon

    class MyDaemon(BaseDaemon):
        name = "my-service"
        description = "My service daemon"

        async def run_daemon(self):
            while not self._shutdown_event.is_set():
                await asyncio.sleep(1)

    if __name__ == "__main__":
        MyDaemon.main()
"""

import argparse
import asyncio
import fcntl
import inspect
import logging
import os
import signal
import sys
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ShutdownHook = Callable[[], Optional[Awaitable[None]]]


class SingleInstance:
    """
    Ensures only one instance of a daemon runs at a time.

    Uses file locking (fcntl.flock) for atomic lock acquisition.
    PID file is written for external status checks.

    Args:
        name: Daemon name used for lock/pid file paths
        lock_dir: Directory for lock files (default: /tmp)
    """

    def __init__(self, name: str, lock_dir: str = "/tmp"):
        self.name = name
        self.lock_dir = Path(lock_dir)
        self._lock_file = None
        self._acquired = False

    @property
    def lock_path(self) -> Path:
        """Path to the lock file."""
        return self.lock_dir / f"{self.name}-daemon.lock"

    @property
    def pid_path(self) -> Path:
        """Path to the PID file."""
        return self.lock_dir / f"{self.name}-daemon.pid"

    def acquire(self) -> bool:
        """
        Try to acquire the lock.

        Returns:
            True if lock acquired, False if another instance is running.
        """
        try:
            self._lock_file = open(self.lock_path, "w")
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            self.pid_path.write_text(str(os.getpid()))
            self._acquired = True
            return True
        except OSError:
            if self._lock_file:
                self._lock_file.close()
                self._lock_file = None
            return False

    def release(self):
        """Release the lock and clean up files."""
        if self._lock_file:
            try:
                fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
                self._lock_file.close()
            except OSError as e:
                logger.debug(f"Failed to release lock {self.lock_path}: {e}")
            self._lock_file = None
        if self._acquired and self.pid_path.exists():
            try:
                self.pid_path.unlink()
            except OSError as e:
                logger.debug(f"Failed to remove pid file {self.pid_path}: {e}")
        self._acquired = False

    def get_running_pid(self) -> Optional[int]:
        """
        Get PID of running instance.

        Returns:
            PID if running, None otherwise.
        """
        if self.pid_path.exists():
            try:
                pid = int(self.pid_path.read_text().strip())
                os.kill(pid, 0)
                return pid
            except (ValueError, OSError):
                pass
        return None

    @property
    def is_acquired(self) -> bool:
        """Whether this instance holds the lock."""
        return self._acquired


class ShutdownHooks:
    """
    Registry of callbacks to run when the daemon is shutting down.

    Hooks may be plain callables or coroutine functions. Registering the
    same callable twice is a no-op. Hooks run in registration order and a
    failing hook never prevents the others from running.
    """

    def __init__(self):
        self._hooks: list[ShutdownHook] = []

    def register(self, hook: ShutdownHook) -> None:
        if hook not in self._hooks:
            self._hooks.append(hook)

    def unregister(self, hook: ShutdownHook) -> bool:
        """Remove a hook. Returns True if it was registered."""
        try:
            self._hooks.remove(hook)
            return True
        except ValueError:
            return False

    def __contains__(self, hook: ShutdownHook) -> bool:
        return hook in self._hooks

    def __len__(self) -> int:
        return len(self._hooks)

    async def run(self) -> int:
        """
        Run every registered hook once.

        Returns:
            Number of hooks that completed without raising
        """
        completed = 0
        for hook in list(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
                completed += 1
            except Exception as e:
                logger.warning(f"Shutdown hook {getattr(hook, '__qualname__', hook)} failed: {e}")
        return completed


class BaseDaemon(ABC):
    """
    Base class for the sync daemons.

    Provides:
    - Single instance enforcement via lock files
    - Standard CLI arguments (--status, --stop, --verbose)
    - Signal handling for graceful shutdown
    - Shutdown hooks run before shutdown()
    - Logging configuration for systemd/journald

    Subclasses must:
    - Set `name` and `description` class attributes
    - Implement `run_daemon()` async method
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""

    def __init__(self, verbose: bool = False):
        """
        Initialize the daemon.

        Args:
            verbose: Enable verbose logging
        """
        if not self.name:
            raise ValueError("Daemon 'name' must be set")

        self.verbose = verbose
        self._shutdown_event = asyncio.Event()
        self._single_instance = SingleInstance(self.name)
        self.shutdown_hooks = ShutdownHooks()

    @property
    def lock_file(self) -> Path:
        """Path to the lock file."""
        return self._single_instance.lock_path

    @property
    def pid_file(self) -> Path:
        """Path to the PID file."""
        return self._single_instance.pid_path

    @abstractmethod
    async def run_daemon(self):
        """
        Main daemon logic. Override this in subclasses.

        This method should run until self._shutdown_event is set.
        """

    async def startup(self):
        """Called before run_daemon(). Override for initialization."""

    async def shutdown(self):
        """Called after run_daemon() exits and the shutdown hooks ran. Override for cleanup."""

    def request_shutdown(self):
        """Request graceful shutdown of the daemon."""
        logger.info(f"Shutdown requested for {self.name}")
        self._shutdown_event.set()

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"Received signal {sig.name}")
            self.request_shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler, sig)

    async def _run(self):
        """Internal run method that handles lifecycle."""
        self._setup_signal_handlers()

        try:
            await self.startup()
            logger.info(f"Daemon ready: {self.name}")
            await self.run_daemon()
        except asyncio.CancelledError:
            logger.info("Daemon cancelled")
        except Exception as e:
            logger.exception(f"Daemon error: {e}")
            raise
        finally:
            if len(self.shutdown_hooks):
                logger.info(f"Running {len(self.shutdown_hooks)} shutdown hook(s)")
                await self.shutdown_hooks.run()
            await self.shutdown()

    def run(self):
        """Run the daemon (blocking)."""
        if not self._single_instance.acquire():
            pid = self._single_instance.get_running_pid()
            print(f"Another instance is already running (PID: {pid})")
            sys.exit(1)

        try:
            asyncio.run(self._run())
        finally:
            self._single_instance.release()

    @classmethod
    def configure_logging(cls, verbose: bool = False):
        """
        Configure logging for systemd/journald.

        Format excludes timestamp (journald adds its own).
        """
        level = logging.DEBUG if verbose else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stderr)],
        )

    @classmethod
    def create_argument_parser(cls) -> argparse.ArgumentParser:
        """
        Create the argument parser with standard daemon arguments.

        Subclasses can override to add custom arguments.
        """
        parser = argparse.ArgumentParser(
            description=cls.description or f"{cls.name} daemon",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--status",
            action="store_true",
            help="Check if daemon is running",
        )
        parser.add_argument(
            "--stop",
            action="store_true",
            help="Stop running daemon",
        )
        parser.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            help="Enable verbose output",
        )
        return parser

    @classmethod
    def handle_status(cls, parsed: Optional[argparse.Namespace] = None) -> int:
        """Handle --status command. Returns exit code."""
        instance = SingleInstance(cls.name)
        pid = instance.get_running_pid()
        if pid:
            print(f"{cls.name} is running (PID: {pid})")
            return 0
        print(f"{cls.name} is not running")
        return 1

    @classmethod
    def handle_stop(cls) -> int:
        """Handle --stop command. Returns exit code."""
        instance = SingleInstance(cls.name)
        pid = instance.get_running_pid()
        if pid:
            try:
                os.kill(pid, signal.SIGTERM)
                print(f"Sent SIGTERM to {cls.name} (PID: {pid})")
                return 0
            except OSError as e:
                print(f"Failed to stop {cls.name}: {e}")
                return 1
        print(f"{cls.name} is not running")
        return 1

    @classmethod
    def handle_extra_args(cls, parsed: argparse.Namespace) -> Optional[int]:
        """
        Handle subclass-specific one-shot arguments.

        Returns:
            Exit code if the arguments were handled, None to start the daemon
        """
        return None

    @classmethod
    def from_args(cls, parsed: argparse.Namespace) -> "BaseDaemon":
        """Build the daemon from parsed arguments. Override to pass extra options."""
        return cls(verbose=parsed.verbose)

    @classmethod
    def main(cls, args: Optional[list] = None):
        """
        Main entry point for the daemon.

        Args:
            args: Command line arguments (defaults to sys.argv)
        """
        parser = cls.create_argument_parser()
        parsed = parser.parse_args(args)

        if parsed.status:
            sys.exit(cls.handle_status(parsed))

        if parsed.stop:
            sys.exit(cls.handle_stop())

        cls.configure_logging(verbose=parsed.verbose)

        exit_code = cls.handle_extra_args(parsed)
        if exit_code is not None:
            sys.exit(exit_code)

        daemon = cls.from_args(parsed)
        daemon.run()
