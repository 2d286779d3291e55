"""
Service lifecycle: settings, logging, store and watcher wired together.

Example:
    >>> settings = SettingsManager().load()
    >>> with ConfigService(settings) as service:
    ...     service.api.export_env(key, "billing", "prod")
"""

import logging
from typing import Optional

from .api import ConfigAPI
from .logger_config import setup_logging
from .settings import ServiceSettings, SettingsManager
from .store import ConfigStore
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class ConfigService:
    """Owns one store and, when enabled, the watcher that keeps it fresh."""

    def __init__(self, settings: Optional[ServiceSettings] = None, configure_logging: bool = True):
        self.settings = settings or SettingsManager().load()
        self.configure_logging = configure_logging
        self.store: Optional[ConfigStore] = None
        self.api: Optional[ConfigAPI] = None
        self.watcher: Optional[ChangeWatcher] = None

    def start(self) -> ConfigStore:
        """Load the configuration tree and start watching it.

        Raises:
            StorageError: If the initial load fails
        """
        if self.store is not None:
            return self.store

        if self.configure_logging:
            setup_logging(self.settings.logging.level)

        store = ConfigStore(self.settings.store.config_dir)
        if self.settings.watcher.enabled:
            self.watcher = ChangeWatcher(store, self.settings.watcher.debounce_seconds)
            self.watcher.start()

        self.store = store
        self.api = ConfigAPI(store)
        logger.info(
            f"configai serving {len(store.list_projects())} projects from {store.root}",
            extra={'component': 'ConfigService', 'action': 'start'}
        )
        return store

    def stop(self) -> None:
        """Stop the watcher and release the store.

        Pending debounced reloads are cancelled. A later ``start()`` loads
        the tree again.
        """
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        if self.store is not None:
            self.store = None
            self.api = None
            logger.info("configai stopped", extra={'component': 'ConfigService', 'action': 'stop'})

    def __enter__(self) -> 'ConfigService':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
