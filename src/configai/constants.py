"""
Shared constants for the configai configuration store.

This module contains the directory-layout conventions, reserved names and
default timings used throughout the codebase. Each constant includes
documentation explaining its purpose and usage.
"""

# ============================================================================
# Directory and File Names
# ============================================================================

"""Directory under the config root holding cross-project baseline settings."""
SHARED_DIR = "shared"

"""Directory under the config root holding one sub-directory per project."""
PROJECTS_DIR = "projects"

"""Base name (extension stripped) of a project's metadata file."""
PROJECT_META_NAME = "project"

"""File extensions recognised as YAML configuration files."""
YAML_EXTENSIONS = (".yaml", ".yml")

"""Names that may not be used as a project or environment name."""
RESERVED_NAMES = frozenset({SHARED_DIR, PROJECTS_DIR})

"""Default configuration root used when no setting overrides it."""
DEFAULT_CONFIG_DIR = "./config"

"""Deepest nesting of arrays and objects accepted in one YAML file."""
MAX_NESTING_DEPTH = 128

"""Most values one YAML file may expand to once aliases are resolved."""
MAX_EXPANDED_VALUES = 100_000

# ============================================================================
# Reload and Watcher Timings
# ============================================================================

"""Quiescence window for coalescing file-change events (milliseconds)."""
DEFAULT_DEBOUNCE_MS = 500

"""Maximum number of reload events kept in the store's history."""
RELOAD_HISTORY_SIZE = 100

"""Seconds to wait for the watcher threads to exit on shutdown."""
WATCHER_JOIN_TIMEOUT = 5.0

# ============================================================================
# Query Surface
# ============================================================================

"""Request header carrying the access key."""
API_KEY_HEADER = "X-API-Key"

"""Environment variable prefix for service settings overrides."""
SETTINGS_ENV_PREFIX = "CONFIGAI_"
