import threading
import time
from dataclasses import dataclass

import pytest

from configai.store import ConfigStore, ReloadResult
from configai.watcher import ChangeWatcher, ReloadScheduler, _ConfigChangeHandler
from conftest import wait_for, write_file


@dataclass
class FakeEvent:
    event_type: str
    src_path: str
    is_directory: bool = False
    dest_path: str = ''


class RecordingScheduler:
    def __init__(self):
        self.paths = []

    def notify(self, path=''):
        self.paths.append(path)


class FakeObserver:
    def __init__(self):
        self.scheduled = []
        self.unscheduled = 0
        self.started = False
        self.stopped = False
        self.daemon = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((path, recursive))

    def unschedule_all(self):
        self.unscheduled += 1
        self.scheduled.clear()

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


@pytest.fixture
def scheduler_factory():
    created = []

    def factory(reload_fn, debounce_seconds=0.2):
        scheduler = ReloadScheduler(reload_fn, debounce_seconds)
        scheduler.start()
        created.append(scheduler)
        return scheduler

    yield factory
    for scheduler in created:
        scheduler.stop()


def test_burst_of_events_gives_one_reload(scheduler_factory):
    calls = []
    scheduler = scheduler_factory(lambda: calls.append(time.monotonic()))

    for i in range(10):
        scheduler.notify(f"file-{i}.yaml")

    assert scheduler.wait_idle(5)
    assert len(calls) == 1
    assert scheduler.rebuild_count == 1
    assert scheduler.event_count == 10


def test_reload_waits_for_quiet_period(scheduler_factory):
    calls = []
    scheduler = scheduler_factory(lambda: calls.append(time.monotonic()), debounce_seconds=0.2)

    first = time.monotonic()
    scheduler.notify()
    time.sleep(0.1)
    last = time.monotonic()
    scheduler.notify()

    assert scheduler.wait_idle(5)
    assert len(calls) == 1
    assert calls[0] - last >= 0.19
    assert calls[0] - first >= 0.29


def test_events_during_reload_give_exactly_one_more(scheduler_factory):
    started = threading.Event()
    release = threading.Event()
    calls = []

    def reload_fn():
        calls.append(1)
        if len(calls) == 1:
            started.set()
            release.wait(5)

    scheduler = scheduler_factory(reload_fn, debounce_seconds=0.05)
    scheduler.notify()
    assert started.wait(5)

    for _ in range(5):
        scheduler.notify()
    assert not scheduler.wait_idle(0.05)
    release.set()

    assert scheduler.wait_idle(5)
    assert len(calls) == 2


def test_stop_cancels_pending_reload():
    calls = []
    scheduler = ReloadScheduler(lambda: calls.append(1), debounce_seconds=0.5)
    scheduler.start()

    scheduler.notify()
    scheduler.stop()
    time.sleep(0.6)

    assert calls == []
    assert not scheduler.running
    scheduler.notify()
    assert scheduler.event_count == 1


def test_reload_errors_do_not_stop_the_worker(scheduler_factory):
    calls = []

    def reload_fn():
        calls.append(1)
        raise RuntimeError("boom")

    scheduler = scheduler_factory(reload_fn, debounce_seconds=0.01)
    scheduler.notify()
    assert scheduler.wait_idle(5)
    scheduler.notify()
    assert scheduler.wait_idle(5)

    assert len(calls) == 2


def test_negative_debounce_is_rejected():
    with pytest.raises(ValueError):
        ReloadScheduler(lambda: None, -1)


@pytest.mark.parametrize("event,expected", [
    (FakeEvent('modified', '/cfg/projects/web/prod.yaml'), ['/cfg/projects/web/prod.yaml']),
    (FakeEvent('created', '/cfg/shared/qa.yml'), ['/cfg/shared/qa.yml']),
    (FakeEvent('deleted', '/cfg/shared/qa.yml'), ['/cfg/shared/qa.yml']),
    (FakeEvent('moved', '/cfg/shared/.qa.yaml.tmp', dest_path='/cfg/shared/qa.yaml'), ['/cfg/shared/.qa.yaml.tmp']),
    (FakeEvent('modified', '/cfg/projects/web/notes.md'), []),
    (FakeEvent('modified', '/cfg/projects/web/.prod.yaml.swp'), []),
    (FakeEvent('opened', '/cfg/projects/web/prod.yaml'), []),
    (FakeEvent('closed', '/cfg/projects/web/prod.yaml'), []),
    (FakeEvent('modified', '/cfg/projects/web', is_directory=True), []),
    (FakeEvent('created', '/cfg/projects/api', is_directory=True), ['/cfg/projects/api']),
    (FakeEvent('deleted', '/cfg/projects/api', is_directory=True), ['/cfg/projects/api']),
])
def test_handler_filters_events(event, expected):
    scheduler = RecordingScheduler()
    _ConfigChangeHandler(scheduler).on_any_event(event)
    assert scheduler.paths == expected


def test_watcher_reloads_store_on_notify(config_tree):
    store = ConfigStore(config_tree)
    observers = []

    def factory():
        observers.append(FakeObserver())
        return observers[-1]

    watcher = ChangeWatcher(store, debounce_seconds=0.01, observer_factory=factory)
    with watcher:
        observer = observers[0]
        assert observer.started
        assert observer.scheduled == [(str(config_tree), True)]

        watcher.notify(str(config_tree / "shared" / "default.yaml"))
        assert watcher.scheduler.wait_idle(5)
        assert store.generation == 2

    assert observer.stopped
    assert not watcher.running
    assert store.get_observer_count() == 0


def test_watcher_follows_root_change(config_tree, tmp_path):
    other = tmp_path / "other"
    write_file(other, "projects/solo/project.yaml", "api_keys: []\n")
    store = ConfigStore(config_tree)
    observer = FakeObserver()

    with ChangeWatcher(store, debounce_seconds=0.01, observer_factory=lambda: observer):
        store.reload(root=other)
        assert observer.scheduled == [(str(other), True)]


def test_watcher_reloads_on_file_change(config_tree, write):
    store = ConfigStore(config_tree)

    with ChangeWatcher(store, debounce_seconds=0.1):
        # Give the observer a moment to register its watches
        time.sleep(0.2)
        write("projects/billing/default.yaml", "db_host: db.internal\n")
        assert wait_for(lambda: store.generation >= 2)

    assert store.get_merged_config_item("billing", "default", "db_host").data == "db.internal"


def test_watcher_keeps_watch_when_root_is_respelled(config_tree):
    store = ConfigStore(f"{config_tree}/./")
    observer = FakeObserver()

    with ChangeWatcher(store, debounce_seconds=0.01, observer_factory=lambda: observer):
        assert store.reload() is ReloadResult.SUCCESS
        assert observer.unscheduled == 0
        assert observer.scheduled == [(f"{config_tree}/./", True)]
