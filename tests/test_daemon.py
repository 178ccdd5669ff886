"""Tests for services/base/daemon.py and services/sync/daemon.py"""

import json
import os
from unittest.mock import patch

import pytest

from services.base.daemon import ShutdownHooks, SingleInstance
from services.sync.daemon import (
    SyncDaemon,
    list_domains,
    read_state_file,
    resolve_state_file,
    sync_now,
    write_state_file,
)


@pytest.fixture
def paths(tmp_path):
    """Config, cache and session files for one daemon instance."""
    files = {
        "config": tmp_path / "config.json",
        "cache": tmp_path / "local_cache.json",
        "session": tmp_path / "session.json",
        "state": tmp_path / "sync_state.json",
    }
    files["config"].write_text(
        json.dumps(
            {
                "remote": {"url": "https://project.example.co", "anon_key": "anon"},
                "sync": {"interval_seconds": 300, "unload_grace_seconds": 1, "state_file": str(files["state"])},
                "cache": {"path": str(files["cache"])},
                "session": {"path": str(files["session"]), "poll_seconds": 60},
            }
        )
    )
    return files


def seed(paths, signed_in=True):
    paths["cache"].write_text(json.dumps({"savedReflections": json.dumps([{"timestamp": "T1", "text": "a"}])}))
    if signed_in:
        paths["session"].write_text(json.dumps({"user_id": "u1", "access_token": "tok"}))


@pytest.fixture
def patched_remote(remote):
    with patch("services.sync.engine.RemoteStore", return_value=remote):
        yield remote


# ==================== Base infrastructure ====================


class TestShutdownHooks:
    async def test_runs_sync_and_async_hooks_in_order(self):
        hooks = ShutdownHooks()
        order = []

        async def second():
            order.append("second")

        hooks.register(lambda: order.append("first"))
        hooks.register(second)

        assert await hooks.run() == 2
        assert order == ["first", "second"]

    async def test_failing_hook_does_not_stop_others(self):
        hooks = ShutdownHooks()
        ran = []

        def broken():
            raise RuntimeError("nope")

        hooks.register(broken)
        hooks.register(lambda: ran.append(True))

        assert await hooks.run() == 1
        assert ran == [True]

    def test_register_is_idempotent(self):
        hooks = ShutdownHooks()

        def hook():
            pass

        hooks.register(hook)
        hooks.register(hook)
        assert len(hooks) == 1
        assert hook in hooks
        assert hooks.unregister(hook) is True
        assert hooks.unregister(hook) is False
        assert hook not in hooks


class TestSingleInstance:
    def test_second_instance_cannot_acquire(self, tmp_path):
        first = SingleInstance("test", lock_dir=str(tmp_path))
        second = SingleInstance("test", lock_dir=str(tmp_path))

        assert first.acquire() is True
        assert first.get_running_pid() == os.getpid()
        assert second.acquire() is False

        first.release()
        assert not first.pid_path.exists()
        assert second.acquire() is True
        second.release()

    def test_no_pid_when_not_running(self, tmp_path):
        assert SingleInstance("idle", lock_dir=str(tmp_path)).get_running_pid() is None


# ==================== State file ====================


class TestStateFile:
    def test_write_and_read(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        write_state_file({"in_progress": False, "last_sync_time": None}, path)
        assert read_state_file(path) == {"in_progress": False, "last_sync_time": None}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_read_missing_or_corrupt(self, tmp_path):
        assert read_state_file(tmp_path / "missing.json") is None
        corrupt = tmp_path / "corrupt.json"
        corrupt.write_text("{")
        assert read_state_file(corrupt) is None


# ==================== CLI ====================


class TestArgumentParser:
    def test_sync_arguments(self, tmp_path):
        parsed = SyncDaemon.create_argument_parser().parse_args(["--config", str(tmp_path / "c.json"), "--sync-now"])
        assert parsed.config == tmp_path / "c.json"
        assert parsed.sync_now is True
        assert parsed.list_domains is False
        assert parsed.status is False

    def test_from_args(self, tmp_path):
        parsed = SyncDaemon.create_argument_parser().parse_args(["-v", "--config", str(tmp_path / "c.json")])
        daemon = SyncDaemon.from_args(parsed)
        assert daemon.verbose is True
        assert daemon.config_path == tmp_path / "c.json"

    def test_list_domains(self, paths, capsys):
        assert list_domains(paths["config"]) == 0
        out = capsys.readouterr().out
        assert "savedReflections -> reflections (user_id,timestamp)" in out
        assert "14 domains" in out

    def test_list_domains_bad_table(self, paths, tmp_path, capsys):
        config = json.loads(paths["config"].read_text())
        config["sync"]["domains_file"] = str(tmp_path / "missing.yaml")
        paths["config"].write_text(json.dumps(config))

        assert list_domains(paths["config"]) == 1
        assert "Invalid domain table" in capsys.readouterr().out

    def test_main_list_domains_exits(self, paths):
        with pytest.raises(SystemExit) as exc_info:
            SyncDaemon.main(["--list-domains", "--config", str(paths["config"])])
        assert exc_info.value.code == 0


class TestStatus:
    def test_reads_state_file_named_by_config(self, paths, capsys):
        write_state_file(
            {"session": "active", "last_sync_label": "2m ago", "last_result": {"synced": 3, "failed": 1}},
            paths["state"],
        )
        parsed = SyncDaemon.create_argument_parser().parse_args(["--status", "--config", str(paths["config"])])

        with patch("services.sync.daemon.SingleInstance.get_running_pid", return_value=None):
            assert SyncDaemon.handle_status(parsed) == 1

        out = capsys.readouterr().out
        assert "wellness-sync is not running" in out
        assert "Session: active" in out
        assert "Last sync: 2m ago" in out
        assert "3 synced, 1 failed" in out

    def test_main_passes_config_to_status(self, paths, capsys):
        write_state_file({"session": "idle", "last_sync_label": "Never synced"}, paths["state"])

        with patch("services.sync.daemon.SingleInstance.get_running_pid", return_value=4242):
            with pytest.raises(SystemExit) as exc_info:
                SyncDaemon.main(["--status", "--config", str(paths["config"])])

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "running (PID: 4242)" in out
        assert "Session: idle" in out

    def test_resolve_state_file(self, paths, tmp_path):
        assert resolve_state_file(paths["config"]) == paths["state"]
        assert resolve_state_file(tmp_path / "missing.json").name == "sync_state.json"


class TestSyncNow:
    async def test_syncs_signed_in_user(self, paths, patched_remote, capsys):
        seed(paths)

        assert await sync_now(paths["config"]) == 0

        assert patched_remote.count("reflections") == 1
        assert patched_remote.closed is True
        out = capsys.readouterr().out
        assert out.startswith("✅ Sync complete")
        assert "synced: 1" in out

    async def test_not_signed_in(self, paths, patched_remote, capsys):
        seed(paths, signed_in=False)

        assert await sync_now(paths["config"]) == 1

        assert patched_remote.calls == []
        assert "not authenticated" in capsys.readouterr().out

    async def test_partial_failure_exit_code(self, paths, patched_remote, capsys):
        seed(paths)
        patched_remote.fail_tables.add("reflections")

        assert await sync_now(paths["config"]) == 1
        assert "failed domains: reflections" in capsys.readouterr().out

    async def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"remote": {"url": "https://x"}}))

        assert await sync_now(path) == 1
        assert "Missing required key: remote.anon_key" in capsys.readouterr().out


# ==================== Daemon lifecycle ====================


class TestSyncDaemonLifecycle:
    async def test_startup_syncs_and_shutdown_flushes(self, paths, patched_remote):
        seed(paths)
        daemon = SyncDaemon(config_path=paths["config"], state_file=paths["state"])

        await daemon.startup()
        assert daemon.engine.controller.state.value == "active"
        assert patched_remote.count("reflections") == 1
        calls_after_start = len(patched_remote.calls)

        await daemon.shutdown_hooks.run()
        await daemon.shutdown()

        assert len(patched_remote.calls) == calls_after_start + 1
        assert patched_remote.closed is True
        state = read_state_file(paths["state"])
        assert state["session"] == "active"
        assert state["last_result"]["synced"] == 1
        assert state["last_sync_label"] == "Just now"
        assert "reflections" in state["domains"]

    async def test_startup_without_session_stays_idle(self, paths, patched_remote):
        seed(paths, signed_in=False)
        daemon = SyncDaemon(config_path=paths["config"])

        await daemon.startup()
        assert daemon.state_file == paths["state"]
        assert daemon.engine.controller.state.value == "idle"
        assert daemon.engine.scheduler.is_running is False
        assert len(daemon.shutdown_hooks) == 0

        await daemon.shutdown()
        assert patched_remote.calls == []
        assert read_state_file(paths["state"])["last_sync_time"] is None

    async def test_sign_in_via_session_file(self, paths, patched_remote):
        seed(paths, signed_in=False)
        daemon = SyncDaemon(config_path=paths["config"], state_file=paths["state"])
        await daemon.startup()

        paths["session"].write_text(json.dumps({"user_id": "u1", "access_token": "tok"}))
        await daemon.watcher.check()

        assert daemon.engine.controller.state.value == "active"
        assert patched_remote.count("reflections") == 1
        await daemon.shutdown()

    async def test_shutdown_before_startup_is_noop(self, paths):
        daemon = SyncDaemon(config_path=paths["config"], state_file=paths["state"])
        await daemon.shutdown()
        assert not paths["state"].exists()
