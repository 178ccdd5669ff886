"""Local cache store.

A flat JSON object on disk mapping cache keys to JSON-encoded strings, the
same layout the app keeps in its client-side storage. Shares the locking,
auto-reload and debounced writes of JsonFileManager.

Usage:
    from services.sync.local_cache import LocalCacheStore

    cache = LocalCacheStore()
    cache.set_item("savedReflections", [{"timestamp": "T1", "text": "a"}])
    raw = cache.get_item("savedReflections")   # '[{"timestamp": "T1", ...}]'
"""

import json
import logging
from pathlib import Path
from typing import Any

from core.errors import CacheReadError
from core.json_file_manager import JsonFileManager
from core.paths import LOCAL_CACHE_FILE

logger = logging.getLogger(__name__)


class LocalCacheStore(JsonFileManager):
    """String-keyed blob storage backed by local_cache.json."""

    _file_label = "local cache"

    def __init__(self, file_path: Path | None = None):
        super().__init__(file_path or LOCAL_CACHE_FILE)

    def get_item(self, key: str) -> str | None:
        """Return the raw value for key, or None if absent.

        Values written by other tools as plain JSON (not strings) are
        re-encoded so callers always get a string.

        Raises:
            CacheReadError: If the cache file exists but was never readable
        """
        error = self.load_error
        if error is not None:
            raise CacheReadError(f"Local cache {self.file_path} is unreadable: {error}")

        value = self.get(key)
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)

    def set_item(self, key: str, value: Any, flush: bool = False) -> None:
        """Store value under key. Non-string values are JSON-encoded."""
        encoded = value if isinstance(value, str) else json.dumps(value)
        with self._lock:
            self._check_reload()
            self._cache[key] = encoded
            self._mark_dirty()
            if flush:
                self._flush_internal()

    def remove_item(self, key: str, flush: bool = False) -> bool:
        """Remove key. Returns True if it existed."""
        return self.delete(key, flush=flush)
