"""
configai - read-only configuration distribution core.

Operators keep per-environment, per-project settings as YAML files in a
directory tree; configai turns the tree into an immutable snapshot, keeps it
current as files change, merges shared and project settings, exports them as
environment variables and checks project access keys.

Modules:
    value: Tagged configuration values
    scanner: Directory tree scanning and YAML parsing
    state: Immutable snapshot model and builder
    store: Snapshot owner, read queries and reload
    watcher: File watching and debounced reload
    merge: Shared/project overlay
    env_export: Environment-variable export
    authenticator: Access-key checks
    api: Framework-neutral query surface for an HTTP layer
    settings: Service settings

Example Usage:
    >>> from configai import ConfigStore
    >>> store = ConfigStore("./config")
    >>> store.get_merged_config("billing", "prod").to_python()
    {'log_level': 'info', 'db_host': 'db.internal'}
"""

from .api import ConfigAPI, error_response
from .authenticator import AuthDecision, AuthOutcome, KeyAuthenticator
from .env_export import env_var_name, env_var_value, env_vars, render_export
from .error_handling import (
    ConfigAIError,
    ConfigItemNotFound,
    ConfigurationError,
    EnvironmentNotFound,
    Forbidden,
    IoError,
    NotFoundError,
    ProjectNotFound,
    StorageError,
    Unauthorized,
    ValidationError,
)
from .merge import merge_config, merge_config_item
from .scanner import DirectoryScanner, ScanResult
from .service import ConfigService
from .settings import ServiceSettings, SettingsManager
from .state import ApiKeyEntry, ConfigState, ProjectData, ProjectMeta, StateBuilder
from .store import ConfigStore, ReloadEvent, ReloadResult
from .value import Value, ValueKind
from .watcher import ChangeWatcher, ReloadScheduler

__version__ = "0.1.0"

__all__ = [
    # Values and snapshots
    'Value',
    'ValueKind',
    'ApiKeyEntry',
    'ProjectMeta',
    'ProjectData',
    'ConfigState',
    'StateBuilder',
    'DirectoryScanner',
    'ScanResult',
    # Store and reload
    'ConfigStore',
    'ReloadResult',
    'ReloadEvent',
    'ChangeWatcher',
    'ReloadScheduler',
    # Queries
    'merge_config',
    'merge_config_item',
    'env_var_name',
    'env_var_value',
    'env_vars',
    'render_export',
    'KeyAuthenticator',
    'AuthDecision',
    'AuthOutcome',
    'ConfigAPI',
    'error_response',
    # Service
    'ConfigService',
    'ServiceSettings',
    'SettingsManager',
    # Errors
    'ConfigAIError',
    'NotFoundError',
    'ProjectNotFound',
    'EnvironmentNotFound',
    'ConfigItemNotFound',
    'Unauthorized',
    'Forbidden',
    'StorageError',
    'IoError',
    'ValidationError',
    'ConfigurationError',
]
