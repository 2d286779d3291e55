"""
File watching and debounced reload scheduling.

``ChangeWatcher`` connects a watchdog observer on the configuration root to a
``ReloadScheduler``. The scheduler runs one background thread that receives
change notifications on a queue and applies a trailing-edge debounce:

1. The first event opens a quiescence window.
2. Every further event restarts the window.
3. When the window passes with no events, ``store.reload()`` runs once.

Events arriving while a reload runs stay queued and produce exactly one
further debounced reload once the current one finishes, so the final state on
disk is always picked up and the number of queued rebuilds never grows.

Example:
    >>> store = ConfigStore("./config")
    >>> with ChangeWatcher(store, debounce_seconds=0.5):
    ...     serve_forever(store)
"""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .constants import DEFAULT_DEBOUNCE_MS, WATCHER_JOIN_TIMEOUT
from .scanner import is_yaml_file
from .state import ConfigState
from .store import ConfigStore

logger = logging.getLogger(__name__)

_STOP = object()

# Events that never change file contents
_IGNORED_EVENT_TYPES = frozenset({'opened', 'closed', 'closed_no_write'})


class ReloadScheduler:
    """Coalesces change notifications into debounced reload calls.

    Attributes:
        debounce_seconds: Length of the quiescence window
        rebuild_count: Number of times the reload callable has run
        event_count: Number of notifications received
    """

    def __init__(self, reload_fn: Callable[[], Any], debounce_seconds: float = DEFAULT_DEBOUNCE_MS / 1000.0):
        if debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must not be negative, got {debounce_seconds}")

        self.debounce_seconds = debounce_seconds
        self.rebuild_count = 0
        self.event_count = 0

        self._reload_fn = reload_fn
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._cond = threading.Condition()
        self._pending = 0
        self._busy = False
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        with self._cond:
            if self._running:
                return
            self._running = True
        self._thread = threading.Thread(target=self._run, name="configai-reload", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = WATCHER_JOIN_TIMEOUT) -> None:
        """Stop the worker, dropping any pending (not yet started) reload.

        A reload already running is allowed to finish.
        """
        with self._cond:
            if not self._running:
                return
            self._running = False
            self._pending = 0
            self._cond.notify_all()
        self._queue.put(_STOP)

        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Reload worker did not stop within timeout")
            self._thread = None

    @property
    def running(self) -> bool:
        return self._running

    def notify(self, path: str = '') -> None:
        """Report a change; ignored once the scheduler is stopped."""
        with self._cond:
            if not self._running:
                return
            self._pending += 1
            self.event_count += 1
        self._queue.put(path)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no events are pending and no reload is running.

        Returns:
            True if idle was reached, False on timeout
        """
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0 and not self._busy, timeout)

    def _take(self, block_timeout: Optional[float]) -> Any:
        item = self._queue.get(timeout=block_timeout)
        if item is not _STOP:
            with self._cond:
                self._pending = max(0, self._pending - 1)
                self._busy = True
        return item

    def _run(self) -> None:
        while True:
            first = self._take(None)
            if first is _STOP:
                break

            # Wait for quiescence, absorbing every event that arrives meanwhile
            stopped = False
            while True:
                try:
                    item = self._take(self.debounce_seconds)
                except queue.Empty:
                    break
                if item is _STOP:
                    stopped = True
                    break
            if stopped:
                break

            try:
                self._reload_fn()
            except Exception as e:
                logger.error(f"Reload callback failed: {e}", exc_info=True)
            finally:
                with self._cond:
                    self.rebuild_count += 1
                    self._busy = False
                    self._cond.notify_all()

        with self._cond:
            self._busy = False
            self._cond.notify_all()


class _ConfigChangeHandler(FileSystemEventHandler):
    """Forwards relevant filesystem events to the scheduler."""

    def __init__(self, scheduler: ReloadScheduler):
        super().__init__()
        self._scheduler = scheduler

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return

        src_path = os.fsdecode(event.src_path)
        if event.is_directory:
            # A directory "modified" event only echoes changes to its files
            if event.event_type != 'modified':
                self._scheduler.notify(src_path)
            return

        paths = [src_path]
        dest_path = getattr(event, 'dest_path', '')
        if dest_path:
            paths.append(os.fsdecode(dest_path))
        if any(is_yaml_file(os.path.basename(p)) for p in paths):
            logger.debug(
                f"Config file {event.event_type}: {src_path}",
                extra={'component': 'ChangeWatcher', 'action': event.event_type}
            )
            self._scheduler.notify(src_path)


def _same_directory(first: str, second: Optional[str]) -> bool:
    """Compare two spellings of a directory (``./config`` vs ``config``)."""
    if second is None:
        return False
    return Path(first).resolve() == Path(second).resolve()


class ChangeWatcher:
    """Watches a store's configuration root and reloads it on change.

    The watcher follows the store: when a reload switches the store to a
    different root, the observer is moved to the new directory.
    """

    def __init__(
        self,
        store: ConfigStore,
        debounce_seconds: float = DEFAULT_DEBOUNCE_MS / 1000.0,
        observer_factory: Callable[[], Any] = Observer
    ):
        """Prepare (but do not start) the watcher.

        Args:
            store: Store to reload
            debounce_seconds: Quiescence window for coalescing events
            observer_factory: Creates the watchdog observer
        """
        self.store = store
        self.scheduler = ReloadScheduler(store.reload, debounce_seconds)
        self._handler = _ConfigChangeHandler(self.scheduler)
        self._observer_factory = observer_factory
        self._observer: Optional[Any] = None
        self._watched_root: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start the reload worker and the filesystem observer."""
        with self._lock:
            if self._observer is not None:
                return
            self.scheduler.start()
            observer = self._observer_factory()
            self._watched_root = self.store.root
            observer.schedule(self._handler, self._watched_root, recursive=True)
            observer.daemon = True
            observer.start()
            self._observer = observer

        self.store.subscribe(self._on_state_change)
        logger.info(
            f"Watching {self._watched_root} (debounce {self.scheduler.debounce_seconds * 1000:.0f}ms)",
            extra={'component': 'ChangeWatcher', 'action': 'start'}
        )

    def stop(self, timeout: float = WATCHER_JOIN_TIMEOUT) -> None:
        """Stop the observer and cancel any pending debounced reload."""
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is None:
            return

        self.store.unsubscribe(self._on_state_change)
        observer.stop()
        observer.join(timeout)
        self.scheduler.stop(timeout)
        logger.info("Stopped watching config root", extra={'component': 'ChangeWatcher', 'action': 'stop'})

    def notify(self, path: str = '') -> None:
        """Inject a change notification, as if a watched file changed."""
        self.scheduler.notify(path)

    def _on_state_change(self, old_state: ConfigState, new_state: ConfigState) -> None:
        if new_state.root is None or _same_directory(new_state.root, self._watched_root):
            return
        with self._lock:
            if self._observer is None:
                return
            self._observer.unschedule_all()
            self._observer.schedule(self._handler, new_state.root, recursive=True)
            self._watched_root = new_state.root
        logger.info(f"Config root moved, now watching {Path(new_state.root)}")

    def __enter__(self) -> 'ChangeWatcher':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
