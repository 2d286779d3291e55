"""
Validation rules for configai.

This module checks the two kinds of structured input the service reads:
project metadata (``project.yaml``) while a snapshot is built, and the
service's own settings. Rules are declared as tables so a reader can see at a
glance what each field accepts.

Key Features:
- Type, min/max and allowed-value checks driven by rule tables
- Project and environment name checks (path segment, reserved names)
- Clear error messages naming the field and file
"""

from typing import Any, Dict, Optional

from .constants import RESERVED_NAMES
from .error_handling import ConfigurationError, ValidationError


def validate_name(kind: str, name: str, path: Optional[str] = None) -> None:
    """Check that a project or environment name is a usable path segment.

    Args:
        kind: ``"project"`` or ``"environment"`` (used in messages)
        name: The name taken from the directory or file
        path: Where the name came from

    Raises:
        ValidationError: If the name is empty, ``.``/``..``, contains a path
            separator or NUL, or is reserved
    """
    if not name or not name.strip():
        raise ValidationError(f"{kind} name must not be empty", path=path)
    if name in ('.', '..') or any(ch in name for ch in ('/', '\\', '\0')):
        raise ValidationError(f"invalid {kind} name: {name!r}", path=path)
    if name in RESERVED_NAMES:
        raise ValidationError(f"{kind} name {name!r} is reserved", path=path)


class RuleValidator:
    """Validates flat dictionaries against a rule table.

    Subclasses set ``VALIDATION_RULES`` (field -> rule) and ``error_class``.
    Supported rule entries: ``type`` (type or tuple of types), ``required``,
    ``min``, ``max``, ``allowed_values``.
    """

    VALIDATION_RULES: Dict[str, Dict[str, Any]] = {}
    error_class = ValidationError

    def _fail(self, message: str, key: str, path: Optional[str]) -> None:
        if self.error_class is ValidationError:
            raise ValidationError(message, field=key, path=path)
        raise self.error_class(f"{key}: {message}")

    def validate_section(self, section: Any, prefix: str = '', path: Optional[str] = None) -> None:
        """Validate every rule whose key starts with ``prefix``.

        Args:
            section: Mapping holding the fields
            prefix: Dotted prefix of the rules to apply (e.g. ``'watcher.'``)
            path: File the section came from, for error messages
        """
        if not isinstance(section, dict):
            self._fail("must be a mapping", prefix.rstrip('.') or 'document', path)

        for full_key, rules in self.VALIDATION_RULES.items():
            if not full_key.startswith(prefix):
                continue
            key = full_key[len(prefix):]
            if key not in section:
                if rules.get('required'):
                    self._fail("missing required field", full_key, path)
                continue
            self.validate_value(full_key, section[key], path)

    def validate_value(self, key: str, value: Any, path: Optional[str] = None) -> None:
        """Validate a single value against its rule.

        Raises:
            ValidationError or ConfigurationError: If validation fails
        """
        if key not in self.VALIDATION_RULES:
            self._fail("unknown field", key, path)

        rules = self.VALIDATION_RULES[key]

        expected_type = rules['type']
        # bool is an int subclass; never accept it for numeric fields
        if (isinstance(value, bool) and expected_type is not bool) or not isinstance(value, expected_type):
            names = (expected_type.__name__ if isinstance(expected_type, type)
                     else '/'.join(t.__name__ for t in expected_type))
            self._fail(f"expected {names}, got {type(value).__name__}", key, path)

        if 'min' in rules and value < rules['min']:
            self._fail(f"value {value} is below minimum {rules['min']}", key, path)

        if 'max' in rules and value > rules['max']:
            self._fail(f"value {value} exceeds maximum {rules['max']}", key, path)

        if 'allowed_values' in rules and value not in rules['allowed_values']:
            self._fail(f"value {value!r} not in allowed values: {rules['allowed_values']}", key, path)

    def is_valid_value(self, key: str, value: Any) -> bool:
        """Check if a value is valid without raising an exception."""
        try:
            self.validate_value(key, value)
            return True
        except (ValidationError, ConfigurationError):
            return False


class ProjectMetaValidator(RuleValidator):
    """Validates the contents of a ``project.yaml`` file.

    Example:
        >>> ProjectMetaValidator().validate_meta(
        ...     {'description': 'Billing', 'api_keys': [{'key': 'k-1'}]})
    """

    VALIDATION_RULES = {
        'description': {
            'type': (str, type(None)),
        },
        'api_keys': {
            'type': list,
            'required': True,
        },
    }

    def validate_meta(self, meta: Dict[str, Any], path: Optional[str] = None) -> None:
        self.validate_section(meta, path=path)

        for index, entry in enumerate(meta['api_keys']):
            field = f"api_keys[{index}]"
            if not isinstance(entry, dict):
                raise ValidationError("must be a mapping with a 'key' field", field=field, path=path)
            key = entry.get('key')
            if not isinstance(key, str) or not key:
                raise ValidationError("'key' must be a non-empty string", field=field, path=path)


class SettingsValidator(RuleValidator):
    """Validates service settings (see ``configai.settings``)."""

    error_class = ConfigurationError

    VALIDATION_RULES = {
        'store.config_dir': {
            'type': str,
            'required': True,
        },
        'watcher.enabled': {
            'type': bool,
        },
        'watcher.debounce_ms': {
            'type': int,
            'min': 0,
            'max': 60000,
        },
        'logging.level': {
            'type': str,
            'allowed_values': ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        },
    }

    def validate_settings(self, settings: Dict[str, Any]) -> None:
        """Validate a complete settings dictionary.

        Raises:
            ConfigurationError: If a section or value is invalid
        """
        if not isinstance(settings, dict):
            raise ConfigurationError("Settings must be a dictionary")

        for section in ('store', 'watcher', 'logging'):
            if section not in settings:
                raise ConfigurationError(f"Missing required section: {section}")
            self.validate_section(settings[section], prefix=f"{section}.")

        if not settings['store']['config_dir'].strip():
            raise ConfigurationError("store.config_dir: must not be empty")
