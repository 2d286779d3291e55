"""
Configuration store with zero-downtime reload.

``ConfigStore`` owns the current ``ConfigState`` snapshot and answers every
read query against it. Reloading rescans the configuration root, builds a
candidate snapshot and, only if that succeeds, publishes it by replacing a
single reference. Readers never take a lock: each call reads the reference
once and works on that snapshot to completion, so a reader sees either the
old tree or the new one in full, never a mixture.

Key Features:
- Copy-on-write snapshots; nothing is mutated after publication
- All-or-nothing reload: failures keep the previous snapshot and are logged
- Serialized reloads (manual, watcher or SIGHUP all use ``reload()``)
- Observer callbacks, reload statistics and a bounded event history

Example:
    >>> store = ConfigStore("./config")
    >>> store.get_env_vars("billing", "prod", prefix="APP")
    {'APP_DB_HOST': 'db.internal', 'APP_DB_PORT': '5432'}
    >>> store.reload()
    <ReloadResult.SUCCESS: 'success'>
"""

import logging
import signal
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .authenticator import KeyAuthenticator
from .constants import RELOAD_HISTORY_SIZE
from .env_export import env_vars, render_export
from .error_handling import IoError, StorageError, ValidationError
from .merge import merge_config, merge_config_item
from .scanner import DirectoryScanner
from .state import ConfigState, StateBuilder
from .value import Value

logger = logging.getLogger(__name__)


class ReloadResult(Enum):
    """Result of a reload operation.

    Attributes:
        SUCCESS: New snapshot published
        STORAGE_ERROR: Scan or parse failure; previous snapshot kept
        IO_ERROR: Filesystem failure; previous snapshot kept
        VALIDATION_FAILED: Naming/metadata rule violated; previous snapshot kept
        ALREADY_IN_PROGRESS: Non-blocking reload skipped because one is running
    """
    SUCCESS = "success"
    STORAGE_ERROR = "storage_error"
    IO_ERROR = "io_error"
    VALIDATION_FAILED = "validation_failed"
    ALREADY_IN_PROGRESS = "already_in_progress"


@dataclass
class ReloadEvent:
    """Represents one reload attempt.

    Attributes:
        timestamp: When the attempt finished
        result: Outcome of the attempt
        root: Directory that was scanned
        generation: Generation of the snapshot in force afterwards
        error_message: Error message if the reload failed
        duration_ms: Duration of the attempt in milliseconds
    """
    timestamp: float
    result: ReloadResult
    root: str
    generation: int
    error_message: Optional[str]
    duration_ms: float

    def __post_init__(self):
        if self.result not in (ReloadResult.SUCCESS, ReloadResult.ALREADY_IN_PROGRESS) \
                and self.error_message is None:
            raise ValueError(f"Failed event {self.result} must have error_message")


# Type alias for observer callbacks
StateObserver = Callable[[ConfigState, ConfigState], None]


class ConfigStore:
    """Owns the current configuration snapshot and serves reads from it.

    Construction performs the first scan; if it fails the error is raised,
    since there is no previous snapshot to fall back to. After that,
    ``reload()`` never raises for scan or build failures.

    Thread Safety:
        Read methods are lock-free. ``reload()`` calls are serialized by
        ``_reload_lock``; statistics, history and observers are guarded by
        ``_lock``.
    """

    def __init__(
        self,
        root: Union[str, Path],
        builder: Optional[StateBuilder] = None,
        authenticator: Optional[KeyAuthenticator] = None,
        enable_signal_handler: bool = False,
        history_size: int = RELOAD_HISTORY_SIZE
    ):
        """Load the initial snapshot.

        Args:
            root: Configuration root directory
            builder: StateBuilder to use (default: a new one)
            authenticator: KeyAuthenticator to use (default: a new one)
            enable_signal_handler: Register a SIGHUP handler that reloads
            history_size: Number of reload events to keep

        Raises:
            StorageError: If the initial scan or build fails
        """
        self._root = str(root)
        self._builder = builder or StateBuilder()
        self._authenticator = authenticator or KeyAuthenticator()

        self._lock = threading.RLock()
        self._reload_lock = threading.Lock()
        self._reload_in_progress = False

        self._observers: List[StateObserver] = []
        self._event_history: List[ReloadEvent] = []
        self._max_history_size = history_size
        self._stats: Dict[str, Any] = {
            'total_reloads': 0,
            'successful_reloads': 0,
            'failed_reloads': 0,
            'last_reload_time': None,
            'last_reload_result': None,
            'last_error': None,
        }

        self._state: ConfigState = self._build(self._root).with_generation(1)

        if enable_signal_handler:
            self.install_signal_handler()

        logger.info(
            f"ConfigStore loaded {len(self._state.projects)} projects from {self._root}",
            extra={'component': 'ConfigStore', 'action': 'init'}
        )

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def snapshot(self) -> ConfigState:
        """Return the snapshot currently in force.

        Callers that make several reads for one request should take one
        snapshot and use the module-level functions against it.
        """
        return self._state

    @property
    def root(self) -> str:
        return self._root

    @property
    def generation(self) -> int:
        return self._state.generation

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def list_projects(self) -> List[str]:
        """Project names in the current snapshot, sorted."""
        return list(self.snapshot().project_names())

    def list_environments(self, project: Optional[str] = None) -> List[str]:
        """Environments visible to ``project`` (shared ones included), sorted.

        Raises:
            ProjectNotFound: If ``project`` is given and unknown
        """
        return list(self.snapshot().environment_names(project))

    def get_merged_config(self, project: str, env: str) -> Value:
        """Merged settings for ``project`` in ``env`` (see ``merge_config``)."""
        return merge_config(self.snapshot(), project, env)

    def get_merged_config_item(self, project: str, env: str, key: str) -> Value:
        """One merged setting (see ``merge_config_item``)."""
        return merge_config_item(self.snapshot(), project, env, key)

    def validate_api_key(self, key: Optional[str]) -> Tuple[str, str]:
        """Resolve ``key`` to ``(owner_project, key)``.

        Raises:
            Unauthorized: If no project owns the key
        """
        return self._authenticator.validate_key(self.snapshot(), key)

    def authorize(self, key: Optional[str], project: str) -> Tuple[str, str]:
        """Require that ``key`` belongs to ``project``.

        Raises:
            Unauthorized: If no project owns the key
            Forbidden: If another project owns the key
        """
        return self._authenticator.authorize(self.snapshot(), key, project)

    def get_env_vars(self, project: str, env: str, prefix: Optional[str] = None) -> Dict[str, str]:
        """Merged settings as environment-variable name -> text pairs."""
        return env_vars(merge_config(self.snapshot(), project, env), prefix)

    def get_env_export(self, project: str, env: str, prefix: Optional[str] = None) -> str:
        """Merged settings as ``export NAME=VALUE`` lines."""
        return render_export(self.get_env_vars(project, env, prefix))

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    def _build(self, root: str) -> ConfigState:
        return self._builder.build(DirectoryScanner(root).scan())

    def reload(self, root: Optional[Union[str, Path]] = None, wait: bool = True) -> ReloadResult:
        """Rescan the configuration root and publish the result.

        This method:
        1. Picks the root to scan (``root`` if given, else the current one)
        2. Scans and builds a candidate snapshot
        3. On success, swaps the candidate in and notifies observers
        4. On failure, keeps the previous snapshot and logs the error

        The root is only switched to ``root`` when the reload succeeds.

        Args:
            root: New configuration root, or None to rescan the current one
            wait: Block until a running reload finishes; when False, return
                ``ALREADY_IN_PROGRESS`` instead

        Returns:
            ReloadResult indicating success or the failure kind
        """
        if not self._reload_lock.acquire(blocking=wait):
            logger.debug("Reload already in progress, skipping")
            return ReloadResult.ALREADY_IN_PROGRESS

        try:
            with self._lock:
                self._reload_in_progress = True
            return self._reload_locked(str(root) if root is not None else self._root)
        finally:
            with self._lock:
                self._reload_in_progress = False
            self._reload_lock.release()

    def _reload_locked(self, root: str) -> ReloadResult:
        start_time = time.time()
        old_state = self._state

        try:
            candidate = self._build(root)
        except IoError as e:
            return self._record_failure(ReloadResult.IO_ERROR, root, e, start_time)
        except ValidationError as e:
            return self._record_failure(ReloadResult.VALIDATION_FAILED, root, e, start_time)
        except StorageError as e:
            return self._record_failure(ReloadResult.STORAGE_ERROR, root, e, start_time)
        except Exception as e:
            logger.error(f"Unexpected error during reload: {e}", exc_info=True)
            return self._record_failure(ReloadResult.STORAGE_ERROR, root, e, start_time)

        new_state = candidate.with_generation(old_state.generation + 1)

        # Publication is a single reference assignment
        self._state = new_state
        self._root = root

        duration_ms = (time.time() - start_time) * 1000
        with self._lock:
            self._stats['total_reloads'] += 1
            self._stats['successful_reloads'] += 1
            self._stats['last_reload_time'] = time.time()
            self._stats['last_reload_result'] = ReloadResult.SUCCESS
            self._stats['last_error'] = None
            self._add_event_to_history(ReloadEvent(
                timestamp=time.time(),
                result=ReloadResult.SUCCESS,
                root=root,
                generation=new_state.generation,
                error_message=None,
                duration_ms=duration_ms
            ))

        logger.info(
            f"Config reloaded in {duration_ms:.2f}ms (generation {new_state.generation})",
            extra={'component': 'ConfigStore', 'action': 'reload', 'result': 'success'}
        )

        # Notify observers (outside lock to avoid deadlock)
        self._notify_observers(old_state, new_state)
        return ReloadResult.SUCCESS

    def _record_failure(
        self,
        result: ReloadResult,
        root: str,
        error: Exception,
        start_time: float
    ) -> ReloadResult:
        error_message = str(error)
        logger.warning(
            f"Reload rejected, keeping generation {self._state.generation}: {error_message}",
            extra={'component': 'ConfigStore', 'action': 'reload', 'result': result.value}
        )

        duration_ms = (time.time() - start_time) * 1000
        with self._lock:
            self._stats['total_reloads'] += 1
            self._stats['failed_reloads'] += 1
            self._stats['last_reload_time'] = time.time()
            self._stats['last_reload_result'] = result
            self._stats['last_error'] = error_message
            self._add_event_to_history(ReloadEvent(
                timestamp=time.time(),
                result=result,
                root=root,
                generation=self._state.generation,
                error_message=error_message,
                duration_ms=duration_ms
            ))
        return result

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: StateObserver) -> None:
        """Subscribe to snapshot changes.

        The observer is called with ``(old_state, new_state)`` after each
        successful reload.

        Args:
            observer: Callback accepting the old and new snapshots
        """
        if not callable(observer):
            raise TypeError("Observer must be callable")

        with self._lock:
            self._observers.append(observer)

    def unsubscribe(self, observer: StateObserver) -> bool:
        """Remove an observer.

        Returns:
            True if observer was found and removed, False otherwise
        """
        with self._lock:
            try:
                self._observers.remove(observer)
                return True
            except ValueError:
                logger.warning(f"Observer {observer!r} not found")
                return False

    def _notify_observers(self, old_state: ConfigState, new_state: ConfigState) -> None:
        with self._lock:
            observers = self._observers.copy()

        for observer in observers:
            try:
                observer(old_state, new_state)
            except Exception as e:
                logger.error(f"Observer {observer!r} raised exception: {e}", exc_info=True)

    def get_observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    # ------------------------------------------------------------------
    # Statistics and history
    # ------------------------------------------------------------------

    def _add_event_to_history(self, event: ReloadEvent) -> None:
        with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history_size:
                self._event_history.pop(0)

    def get_stats(self) -> Dict[str, Any]:
        """Get reload statistics, including the current generation."""
        with self._lock:
            stats = self._stats.copy()
        stats['generation'] = self._state.generation
        return stats

    def get_event_history(self, limit: Optional[int] = None) -> List[ReloadEvent]:
        """Get reload events, most recent first.

        Args:
            limit: Maximum number of events to return; None returns all
        """
        with self._lock:
            history = self._event_history.copy()

        if limit is not None:
            history = history[-limit:] if limit > 0 else []

        return list(reversed(history))

    def clear_history(self) -> None:
        with self._lock:
            self._event_history.clear()

    def is_reload_in_progress(self) -> bool:
        with self._lock:
            return self._reload_in_progress

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def install_signal_handler(self) -> bool:
        """Reload on SIGHUP (``kill -HUP <pid>``).

        Only possible from the main thread on platforms that have SIGHUP.

        Returns:
            True if the handler was installed
        """
        if not hasattr(signal, 'SIGHUP') or threading.current_thread() is not threading.main_thread():
            logger.warning("SIGHUP reload handler not available here")
            return False

        def signal_handler(signum: int, frame) -> None:
            logger.info(f"Received signal {signum}, triggering config reload")
            # Run off the signal frame so a held reload lock cannot deadlock
            threading.Thread(target=self.reload, name="configai-sighup-reload", daemon=True).start()

        signal.signal(signal.SIGHUP, signal_handler)
        logger.info("Registered SIGHUP signal handler for config reload")
        return True
