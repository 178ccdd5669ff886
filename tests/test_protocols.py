"""Tests for core/protocols.py - Structural interfaces of the sync collaborators."""

from core.protocols import LocalCache, RemoteUpserter, SessionProvider
from services.sync.local_cache import LocalCacheStore
from services.sync.remote_store import RemoteStore
from services.sync.session_events import SessionEventHub

# ────────────────────────────────────────────────────────────────────
# Partial implementations
# ────────────────────────────────────────────────────────────────────


class CacheWithoutGet:
    def set_item(self, key, value):
        pass


class HalfSession:
    def current_identity(self):
        return None


class TestConcreteImplementations:
    def test_local_cache_store(self, tmp_path):
        assert isinstance(LocalCacheStore(tmp_path / "c.json"), LocalCache)

    def test_remote_store(self):
        assert isinstance(RemoteStore("https://x", "k"), RemoteUpserter)

    def test_session_hub(self):
        assert isinstance(SessionEventHub(), SessionProvider)

    def test_test_doubles(self, cache, remote, hub):
        assert isinstance(cache, LocalCache)
        assert isinstance(remote, RemoteUpserter)
        assert isinstance(hub, SessionProvider)


class TestNonConforming:
    def test_cache_without_get_item(self):
        assert not isinstance(CacheWithoutGet(), LocalCache)

    def test_partial_session(self):
        assert not isinstance(HalfSession(), SessionProvider)

    def test_plain_values(self):
        assert not isinstance(None, SessionProvider)
        assert not isinstance("cache", LocalCache)
