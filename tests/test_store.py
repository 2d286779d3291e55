import os
import signal
import threading
import time

import pytest

from conftest import wait_for, write_file
from configai.error_handling import EnvironmentNotFound, Forbidden, StorageError, Unauthorized
from configai.state import StateBuilder
from configai.store import ConfigStore, ReloadEvent, ReloadResult
from configai.value import Value


class BlockingBuilder(StateBuilder):
    """Builder that can be made to pause mid-build."""

    def __init__(self):
        super().__init__()
        self.armed = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def build(self, scan):
        if self.armed:
            self.entered.set()
            self.release.wait(10)
        return super().build(scan)


def test_initial_load(config_tree):
    store = ConfigStore(config_tree)

    assert store.generation == 1
    assert store.root == str(config_tree)
    assert store.list_projects() == ["billing", "web"]
    assert store.list_environments("billing") == ["default", "prod", "staging"]


def test_initial_load_failure_raises(tmp_path):
    with pytest.raises(StorageError):
        ConfigStore(tmp_path / "missing")


def test_read_operations(config_tree):
    store = ConfigStore(config_tree)

    assert store.get_merged_config("billing", "default").get("db_host") == Value.string("localhost")
    assert store.get_merged_config_item("web", "prod", "api-timeout") == Value.number(5)
    assert store.get_env_vars("billing", "default")["DB_PORT"] == "5432"
    assert "export MY_APP_DB_HOST=localhost" in store.get_env_export("billing", "default", "MY_APP").split("\n")
    with pytest.raises(EnvironmentNotFound):
        store.get_merged_config("billing", "qa")


def test_key_checks(config_tree):
    store = ConfigStore(config_tree)

    assert store.validate_api_key("web-key") == ("web", "web-key")
    assert store.authorize("billing-key-1", "billing") == ("billing", "billing-key-1")
    with pytest.raises(Unauthorized):
        store.validate_api_key("nope")
    with pytest.raises(Forbidden):
        store.authorize("web-key", "billing")


def test_reload_picks_up_changes(config_tree, write):
    store = ConfigStore(config_tree)
    write("projects/billing/default.yaml", "db_host: db.internal\n")

    assert store.reload() is ReloadResult.SUCCESS
    assert store.generation == 2
    assert store.get_merged_config_item("billing", "default", "db_host") == Value.string("db.internal")


def test_failed_reload_keeps_previous_snapshot(config_tree, write):
    store = ConfigStore(config_tree)
    before = store.snapshot()

    write("projects/web/prod.yaml", "redis.url: [unclosed\n")
    assert store.reload() is ReloadResult.STORAGE_ERROR
    assert store.snapshot() is before
    assert store.get_merged_config_item("web", "prod", "redis.url") == Value.string("redis://cache:6379")

    write("projects/web/prod.yaml", "redis.url: redis://new:6379\n")
    assert store.reload() is ReloadResult.SUCCESS
    assert store.generation == 2
    assert store.get_merged_config_item("web", "prod", "redis.url") == Value.string("redis://new:6379")


def test_validation_failure_result(config_tree, write):
    store = ConfigStore(config_tree)
    write("projects/web/project.yaml", "api_keys:\n  - key: billing-key-1\n")

    assert store.reload() is ReloadResult.VALIDATION_FAILED
    assert store.validate_api_key("web-key") == ("web", "web-key")


def test_reload_to_new_root(config_tree, tmp_path):
    other = tmp_path / "other"
    write_file(other, "projects/solo/project.yaml", "api_keys:\n  - key: solo-key\n")
    store = ConfigStore(config_tree)

    assert store.reload(root=other) is ReloadResult.SUCCESS
    assert store.root == str(other)
    assert store.list_projects() == ["solo"]


def test_failed_reload_to_new_root_keeps_old_root(config_tree, tmp_path):
    store = ConfigStore(config_tree)

    assert store.reload(root=tmp_path / "missing") is ReloadResult.STORAGE_ERROR
    assert store.root == str(config_tree)


def test_observers_see_old_and_new(config_tree):
    store = ConfigStore(config_tree)
    seen = []
    store.subscribe(lambda old, new: seen.append((old.generation, new.generation)))

    store.reload()

    assert seen == [(1, 2)]


def test_failing_observer_does_not_block_others(config_tree):
    store = ConfigStore(config_tree)
    calls = []

    def broken(old, new):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda old, new: calls.append(new.generation))

    assert store.reload() is ReloadResult.SUCCESS
    assert calls == [2]


def test_unsubscribe(config_tree):
    store = ConfigStore(config_tree)

    def observer(old, new):
        pass

    store.subscribe(observer)
    assert store.get_observer_count() == 1
    assert store.unsubscribe(observer) is True
    assert store.unsubscribe(observer) is False
    with pytest.raises(TypeError):
        store.subscribe("not callable")


def test_stats_and_history(config_tree, write):
    store = ConfigStore(config_tree, history_size=2)
    store.reload()
    write("shared/default.yaml", "- not a mapping\n")
    store.reload()
    store.reload()

    stats = store.get_stats()
    assert stats['total_reloads'] == 3
    assert stats['successful_reloads'] == 1
    assert stats['failed_reloads'] == 2
    assert stats['last_reload_result'] is ReloadResult.STORAGE_ERROR
    assert "must be a mapping" in stats['last_error']
    assert stats['generation'] == 2

    history = store.get_event_history()
    assert len(history) == 2
    assert all(event.result is ReloadResult.STORAGE_ERROR for event in history)
    assert history[0].timestamp >= history[1].timestamp
    assert store.get_event_history(limit=1) == history[:1]

    store.clear_history()
    assert store.get_event_history() == []


def test_failed_event_requires_message():
    with pytest.raises(ValueError):
        ReloadEvent(time.time(), ReloadResult.IO_ERROR, "/cfg", 1, None, 0.0)


def test_non_blocking_reload_while_busy(config_tree):
    builder = BlockingBuilder()
    store = ConfigStore(config_tree, builder=builder)
    builder.armed = True

    worker = threading.Thread(target=store.reload)
    worker.start()
    try:
        assert builder.entered.wait(5)
        assert store.is_reload_in_progress()
        assert store.reload(wait=False) is ReloadResult.ALREADY_IN_PROGRESS
    finally:
        builder.release.set()
        worker.join(5)

    assert not store.is_reload_in_progress()
    assert store.generation == 2


def test_readers_never_see_a_mixed_snapshot(tmp_path):
    roots = []
    for marker in ("a", "b"):
        root = tmp_path / marker
        write_file(root, "shared/default.yaml", f"shared_marker: {marker}\n")
        write_file(root, "projects/app/project.yaml", "api_keys:\n  - key: app-key\n")
        write_file(root, "projects/app/default.yaml", f"project_marker: {marker}\n")
        roots.append(root)

    store = ConfigStore(roots[0])
    stop = threading.Event()
    torn = []

    def reader():
        while not stop.is_set():
            merged = store.get_merged_config("app", "default")
            if merged.get("shared_marker") != merged.get("project_marker"):
                torn.append(merged)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    try:
        for i in range(20):
            assert store.reload(root=roots[i % 2]) is ReloadResult.SUCCESS
    finally:
        stop.set()
        for thread in readers:
            thread.join(5)

    assert torn == []
    assert store.generation == 21


@pytest.mark.skipif(not hasattr(signal, "SIGHUP"), reason="SIGHUP not available")
def test_sighup_triggers_reload(config_tree):
    previous = signal.getsignal(signal.SIGHUP)
    store = ConfigStore(config_tree)
    try:
        assert store.install_signal_handler() is True
        os.kill(os.getpid(), signal.SIGHUP)
        assert wait_for(lambda: store.generation == 2)
    finally:
        signal.signal(signal.SIGHUP, previous)


def test_self_referencing_file_is_a_storage_error(config_tree, write):
    store = ConfigStore(config_tree)
    write("shared/default.yaml", "a: &x [*x]\n")

    assert store.reload() is ReloadResult.STORAGE_ERROR
    assert store.generation == 1
    with pytest.raises(StorageError):
        ConfigStore(config_tree)
