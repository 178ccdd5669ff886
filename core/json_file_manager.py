"""JSON File Manager Base Class.

Thread-safe, debounced access to a single JSON object on disk:
- Reads take a shared fcntl.flock, since the desktop app and the sync
  daemon may both touch the same file
- Writes go to a temp file that replaces the original, so a reader never
  sees a truncated document
- Automatic cache invalidation via mtime checking
- Debounced writes to reduce disk I/O

Shared base for ConfigManager (config.json) and LocalCacheStore
(local_cache.json).
"""

import fcntl
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from threading import Timer
from typing import Any

logger = logging.getLogger(__name__)

# Debounce delay in seconds
DEBOUNCE_DELAY = 2.0


def _copy_default(data: dict[str, Any] | None) -> dict[str, Any]:
    """Deep copy default data so instances never share nested dicts."""
    return json.loads(json.dumps(data)) if data else {}


class JsonFileManager:
    """Thread-safe, debounced JSON file manager.

    Subclasses may override:
    - _file_label: human-readable label for log messages

    When the file cannot be parsed, the last successfully loaded document
    stays in use and the next access retries. If nothing was ever loaded,
    the defaults are used and load_error describes the failure.

    Args:
        file_path: Location of the JSON file
        default_data: Data used when the file is missing or unreadable
    """

    _file_label: str = "JSON file"

    def __init__(self, file_path: Path, default_data: dict[str, Any] | None = None):
        self._file_path = Path(file_path).expanduser()
        self._default_data = default_data or {}
        self._lock = threading.RLock()
        self._cache: dict[str, Any] = {}
        self._loaded = False
        self._load_error: str | None = None
        self._dirty = False
        self._last_mtime: float = 0.0
        self._debounce_timer: Timer | None = None

        self._load()

        logger.debug(f"{self._file_label} manager initialized from {self._file_path}")

    @property
    def file_path(self) -> Path:
        """Path of the backing file."""
        return self._file_path

    @property
    def load_error(self) -> str | None:
        """Why the file could not be read, while only defaults are available."""
        with self._lock:
            self._check_reload()
            return self._load_error

    def _read_locked(self) -> Any:
        with open(self._file_path) as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            try:
                return json.load(f)
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    def _load(self) -> None:
        """Load data from disk (internal, no lock)."""
        if not self._file_path.exists():
            self._cache = _copy_default(self._default_data)
            self._last_mtime = 0.0
            self._loaded = False
            self._load_error = None
            logger.info(f"{self._file_label} not found, using defaults: {self._file_path}")
            return

        try:
            mtime = self._file_path.stat().st_mtime
            data = self._read_locked()
            if not isinstance(data, dict):
                raise json.JSONDecodeError("top-level value must be an object", "", 0)
        except (OSError, json.JSONDecodeError) as e:
            self._on_load_failed(e)
            return

        self._cache = data
        self._last_mtime = mtime
        self._loaded = True
        self._load_error = None
        logger.debug(f"{self._file_label} loaded, {len(self._cache)} entries")

    def _on_load_failed(self, error: Exception) -> None:
        # mtime 0 makes the next access retry
        self._last_mtime = 0.0
        if self._loaded:
            logger.warning(f"Cannot read {self._file_label}, keeping last good copy: {error}")
            return
        logger.error(f"Cannot read {self._file_label}: {error}")
        self._cache = _copy_default(self._default_data)
        self._load_error = str(error)

    def _check_reload(self) -> None:
        """Reload if the file was modified externally (internal, no lock)."""
        try:
            if self._file_path.exists():
                current_mtime = self._file_path.stat().st_mtime
                if current_mtime > self._last_mtime:
                    logger.info(f"{self._file_label} changed externally, reloading")
                    self._load()
        except OSError as e:
            logger.debug(f"Cannot stat {self._file_label}: {e}")

    def _mark_dirty(self) -> None:
        """Mark data as dirty and schedule a debounced write (internal, no lock)."""
        self._dirty = True

        if self._debounce_timer is not None:
            self._debounce_timer.cancel()

        self._debounce_timer = Timer(DEBOUNCE_DELAY, self._flush_debounced)
        self._debounce_timer.daemon = True  # Don't block process exit
        self._debounce_timer.start()

    def _flush_debounced(self) -> None:
        """Called by the debounce timer."""
        with self._lock:
            self._flush_internal()

    def _flush_internal(self) -> None:
        """Write data to disk through a temp file (assumes lock held)."""
        if not self._dirty:
            return

        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix=".tmp", prefix=f".{self._file_path.stem}_", dir=self._file_path.parent
            )
            try:
                with os.fdopen(temp_fd, "w") as f:
                    json.dump(self._cache, f, indent=2)
                    f.write("\n")
                os.replace(temp_path, self._file_path)
            except OSError:
                Path(temp_path).unlink(missing_ok=True)
                raise

            self._dirty = False
            self._loaded = True
            self._load_error = None
            self._last_mtime = self._file_path.stat().st_mtime
            logger.debug(f"{self._file_label} flushed to disk")

        except OSError as e:
            logger.error(f"Failed to write {self._file_label}: {e}")

    # ==================== Public API ====================

    def get(self, section: str, default: Any = None) -> Any:
        """Get a top-level value."""
        with self._lock:
            self._check_reload()
            return self._cache.get(section, default)

    def get_all(self) -> dict[str, Any]:
        """Return a shallow copy of the whole document."""
        with self._lock:
            self._check_reload()
            return dict(self._cache)

    def delete(self, section: str, flush: bool = False) -> bool:
        """Delete a top-level value.

        Returns:
            True if something was deleted
        """
        with self._lock:
            self._check_reload()

            if section not in self._cache:
                return False

            del self._cache[section]
            self._mark_dirty()
            if flush:
                self._flush_internal()
            return True

    def reload(self) -> None:
        """Force reload from disk, discarding pending changes."""
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None

            self._dirty = False
            self._load()
