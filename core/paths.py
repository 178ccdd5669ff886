"""Centralized path definitions for all state files.

All application state lives under ~/.config/interpreter-wellness/ following XDG
conventions. This module is the single source of truth for those paths.

Usage:
    from core.paths import CONFIG_FILE, LOCAL_CACHE_FILE, SESSION_FILE
"""

import os
from pathlib import Path

# Base directory for all state
APP_CONFIG_DIR = Path.home() / ".config" / "interpreter-wellness"


# =============================================================================
# Configuration
# =============================================================================

# Static settings (remote endpoint, intervals, file locations)
CONFIG_FILE = Path(os.environ.get("WELLNESS_SYNC_CONFIG", APP_CONFIG_DIR / "config.json"))

# =============================================================================
# Client-side state
# =============================================================================

# Local cache of user records, one JSON-encoded string per key
LOCAL_CACHE_FILE = APP_CONFIG_DIR / "local_cache.json"

# Session written by the desktop sign-in flow (user id + access token)
SESSION_FILE = APP_CONFIG_DIR / "session.json"

# Snapshot of the sync status for status indicators
SYNC_STATE_FILE = APP_CONFIG_DIR / "sync_state.json"

# =============================================================================
# Bundled data
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DOMAINS_FILE = PROJECT_ROOT / "services" / "sync" / "domains.yaml"
