"""
Service settings for configai.

Settings are resolved in three layers, later layers winning:

1. Built-in defaults (the dataclasses below)
2. An optional YAML settings file, deep-merged over the defaults
3. ``CONFIGAI_*`` environment variables

The merged result is validated by ``SettingsValidator`` before it is turned
into a ``ServiceSettings`` instance.

Environment variables:
    CONFIGAI_CONFIG_DIR    store.config_dir
    CONFIGAI_WATCH         watcher.enabled (1/true/yes/on)
    CONFIGAI_DEBOUNCE_MS   watcher.debounce_ms
    CONFIGAI_LOG_LEVEL     logging.level
"""

import copy
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import DEFAULT_CONFIG_DIR, DEFAULT_DEBOUNCE_MS, SETTINGS_ENV_PREFIX
from .error_handling import ConfigurationError
from .validation import SettingsValidator


@dataclass
class StoreSettings:
    """Where the configuration tree lives.

    Attributes:
        config_dir: Configuration root directory (default: ./config)
    """

    config_dir: str = DEFAULT_CONFIG_DIR


@dataclass
class WatcherSettings:
    """File watching configuration.

    Attributes:
        enabled: Reload automatically on file changes (default: True)
        debounce_ms: Quiescence window in milliseconds (default: 500)
    """

    enabled: bool = True
    debounce_ms: int = DEFAULT_DEBOUNCE_MS

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


@dataclass
class LoggingSettings:
    """Logging configuration.

    Attributes:
        level: Level name for the ``configai`` logger (default: INFO)
    """

    level: str = "INFO"


@dataclass
class ServiceSettings:
    """Complete service settings."""

    store: StoreSettings = field(default_factory=StoreSettings)
    watcher: WatcherSettings = field(default_factory=WatcherSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'store': {
                'config_dir': self.store.config_dir,
            },
            'watcher': {
                'enabled': self.watcher.enabled,
                'debounce_ms': self.watcher.debounce_ms,
            },
            'logging': {
                'level': self.logging.level,
            },
        }

    @classmethod
    def from_dict(cls, settings: Dict[str, Any]) -> 'ServiceSettings':
        store = settings.get('store', {})
        watcher = settings.get('watcher', {})
        log = settings.get('logging', {})
        return cls(
            store=StoreSettings(config_dir=store.get('config_dir', DEFAULT_CONFIG_DIR)),
            watcher=WatcherSettings(
                enabled=watcher.get('enabled', True),
                debounce_ms=watcher.get('debounce_ms', DEFAULT_DEBOUNCE_MS),
            ),
            logging=LoggingSettings(level=log.get('level', 'INFO')),
        )


_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off')


class SettingsManager:
    """Loads and validates ``ServiceSettings``.

    Example:
        >>> manager = SettingsManager(settings_path="/etc/configai.yaml")
        >>> settings = manager.load()
        >>> settings.watcher.debounce_ms
        500
    """

    def __init__(
        self,
        settings_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Args:
            settings_path: Optional YAML settings file
            environ: Environment to read overrides from (default: os.environ)
        """
        self.settings_path = os.path.expanduser(settings_path) if settings_path else None
        self.environ = os.environ if environ is None else environ
        self.validator = SettingsValidator()

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> ServiceSettings:
        """Resolve all layers into validated settings.

        Args:
            overrides: Extra nested settings applied last (e.g. from a CLI)

        Raises:
            ConfigurationError: If the file cannot be parsed or a value is invalid
        """
        merged = ServiceSettings().to_dict()
        if self.settings_path:
            merged = self._deep_merge(merged, self._read_file(self.settings_path))
        merged = self._deep_merge(merged, self._env_overrides())
        if overrides:
            merged = self._deep_merge(merged, overrides)

        log = merged.get('logging')
        if isinstance(log, dict) and isinstance(log.get('level'), str):
            log['level'] = log['level'].upper()

        self.validator.validate_settings(merged)
        return ServiceSettings.from_dict(merged)

    def _read_file(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Settings file not found: {path}") from None
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML settings: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read settings file: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        return data

    def _env_overrides(self) -> Dict[str, Any]:
        env = self.environ
        overrides: Dict[str, Any] = {}

        config_dir = env.get(f"{SETTINGS_ENV_PREFIX}CONFIG_DIR")
        if config_dir:
            overrides.setdefault('store', {})['config_dir'] = config_dir

        watch = env.get(f"{SETTINGS_ENV_PREFIX}WATCH")
        if watch:
            lowered = watch.strip().lower()
            if lowered not in _TRUE_VALUES + _FALSE_VALUES:
                raise ConfigurationError(f"{SETTINGS_ENV_PREFIX}WATCH: not a boolean: {watch!r}")
            overrides.setdefault('watcher', {})['enabled'] = lowered in _TRUE_VALUES

        debounce = env.get(f"{SETTINGS_ENV_PREFIX}DEBOUNCE_MS")
        if debounce:
            try:
                overrides.setdefault('watcher', {})['debounce_ms'] = int(debounce)
            except ValueError:
                raise ConfigurationError(
                    f"{SETTINGS_ENV_PREFIX}DEBOUNCE_MS: not an integer: {debounce!r}"
                ) from None

        level = env.get(f"{SETTINGS_ENV_PREFIX}LOG_LEVEL")
        if level:
            overrides.setdefault('logging', {})['level'] = level

        return overrides

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge override dict into base dict.

        Args:
            base: Base dictionary (defaults)
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = copy.deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
