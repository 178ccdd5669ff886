"""Pytest configuration and shared fixtures."""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

# Add project paths
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.errors import RemoteStoreError  # noqa: E402
from services.sync.domains import load_domains  # noqa: E402
from services.sync.session_events import SessionEventHub  # noqa: E402
from services.sync.types import Identity  # noqa: E402

FIXED_NOW = datetime(2025, 9, 16, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# In-memory collaborators
# ============================================================================


class MemoryCache:
    """dict-backed LocalCache."""

    def __init__(self, items: dict[str, Any] | None = None):
        self.items: dict[str, str] = {}
        for key, value in (items or {}).items():
            self.set_item(key, value)

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        self.items[key] = value if isinstance(value, str) else json.dumps(value)


class FakeRemoteStore:
    """RemoteUpserter with real upsert semantics.

    rows[table] maps a conflict-key tuple to the stored record, so
    re-upserting the same records never grows the table.

    Attributes:
        calls: (table, records, conflict_key) per upsert
        tokens: access token passed with each upsert
        fail_tables: tables whose upserts raise RemoteStoreError
        gate: when set, every upsert waits for it (holds a pass in flight)
    """

    def __init__(self, fail_tables: set[str] | None = None):
        self.rows: dict[str, dict[tuple, dict]] = {}
        self.calls: list[tuple[str, list[dict], str]] = []
        self.tokens: list[str | None] = []
        self.fail_tables = set(fail_tables or ())
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()
        self.closed = False

    async def upsert(self, table: str, records: list[dict], conflict_key: str, access_token: str | None = None) -> None:
        self.calls.append((table, records, conflict_key))
        self.tokens.append(access_token)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if table in self.fail_tables:
            raise RemoteStoreError(f"Upsert into {table} failed: HTTP 500", status=500)

        columns = conflict_key.split(",")
        table_rows = self.rows.setdefault(table, {})
        for record in records:
            key = tuple(record[c] for c in columns)
            table_rows[key] = {**table_rows.get(key, {}), **record}

    def count(self, table: str) -> int:
        return len(self.rows.get(table, {}))

    def tables_called(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def temp_dir(tmp_path):
    """Return a temporary directory for test files."""
    return tmp_path


@pytest.fixture(autouse=True)
def setup_env():
    """Set up environment variables for testing."""
    original_env = dict(os.environ)
    os.environ.setdefault("TESTING", "1")

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def clock():
    """Deterministic clock."""
    return lambda: FIXED_NOW


@pytest.fixture
def identity():
    return Identity("u1", "access-token-1")


@pytest.fixture
def hub(identity):
    """Session hub with a restored user."""
    return SessionEventHub(identity)


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def domains():
    """The bundled domain table."""
    return load_domains()
