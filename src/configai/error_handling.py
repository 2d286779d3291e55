"""
Centralized error handling for configai.

This module provides a consistent exception hierarchy for all configai
operations. Request-time lookup failures (``NotFoundError`` and ``AuthError``
subclasses) surface directly to callers; build and reload failures
(``StorageError`` subclasses) abort only the reload that raised them.
"""

from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class ConfigAIError(Exception):
    """
    Base exception for all configai errors.

    Attributes:
        message: Human-readable error message
        component: Name of the component where the error occurred
        context: Additional context information about the error
    """

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.message = message
        self.component = component
        self.context = context or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "component": self.component,
            "context": self.context
        }


class NotFoundError(ConfigAIError):
    """
    A request referenced a name absent from the current snapshot.

    Attributes:
        name: The project, environment or key that was not found
    """

    kind = "resource"

    def __init__(
        self,
        name: str,
        component: str = "store",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.name = name
        super().__init__(f"{self.kind} not found: {name}", component, context)


class ProjectNotFound(NotFoundError):
    kind = "project"


class EnvironmentNotFound(NotFoundError):
    kind = "environment"


class ConfigItemNotFound(NotFoundError):
    kind = "config item"


class AuthError(ConfigAIError):
    """Base class for access-key failures."""

    def __init__(
        self,
        message: str,
        component: str = "auth",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, component, context)


class Unauthorized(AuthError):
    """
    The presented access key is missing or not recognised by any project.
    """

    def __init__(self, message: str = "invalid api key", **kwargs: Any) -> None:
        super().__init__(f"unauthorized: {message}", **kwargs)


class Forbidden(AuthError):
    """
    The access key is valid but bound to a different project than requested.
    """

    def __init__(self, project: str, **kwargs: Any) -> None:
        self.project = project
        super().__init__(
            f"forbidden: api key not authorized for project: {project}",
            **kwargs
        )


class StorageError(ConfigAIError):
    """
    Error while scanning, parsing or building a configuration snapshot.

    Raised for:
    - Malformed YAML or a non-mapping top-level document
    - Duplicate environment files after extension stripping
    - Missing or unusable configuration root
    """

    prefix = "storage error"

    def __init__(
        self,
        message: str,
        component: str = "storage",
        context: Optional[Dict[str, Any]] = None,
        path: Optional[str] = None
    ) -> None:
        self.path = path
        if path is not None:
            context = {**(context or {}), "path": path}
        super().__init__(f"{self.prefix}: {message}", component, context)


class IoError(StorageError):
    """
    Filesystem failure (permissions, vanished files) during a scan.
    """

    prefix = "io error"


class ValidationError(StorageError):
    """
    A scanned tree violates naming or metadata rules.

    Raised for:
    - Invalid or reserved project/environment names
    - Missing or malformed ``project.yaml``
    - Access keys duplicated within or across projects
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        path: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message, "validation", context, path)


class ConfigurationError(ConfigAIError):
    """
    Error in the service's own settings.

    Raised when settings are invalid, including:
    - Values of the wrong type or outside allowed limits
    - Settings file parsing errors
    """

    def __init__(
        self,
        message: str,
        component: str = "configuration",
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, component, context)


def handle_error(
    error: Exception,
    reraise: bool = False,
    level: str = "error"
) -> None:
    """
    Handle an error with consistent logging behavior.

    Args:
        error: The exception to handle
        reraise: Whether to re-raise the exception after logging
        level: Log level (debug, info, warning, error, critical)

    Example:
        >>> try:
        ...     store.reload()
        ... except StorageError as e:
        ...     handle_error(e, level="warning")
    """
    if isinstance(error, ConfigAIError):
        error_dict = error.to_dict()
        log_message = f"{error_dict['error_type']}: {error_dict['message']}"
        if error_dict.get('context'):
            log_message += f" | Context: {error_dict['context']}"
    else:
        log_message = f"{type(error).__name__}: {error}"

    log_func = getattr(logger, level, logger.error)
    log_func(log_message, exc_info=not isinstance(error, ConfigAIError))

    if reraise:
        raise error


def wrap_error(
    error: Exception,
    message: str,
    error_class: type = StorageError,
    **context: Any
) -> ConfigAIError:
    """
    Wrap an exception in a ConfigAIError with additional context.

    Args:
        error: The original exception
        message: Additional message explaining the context
        error_class: The ConfigAIError subclass to use
        **context: Additional context key-value pairs; a ``path`` entry is
            also passed to ``StorageError`` subclasses as their ``path``

    Returns:
        A new ConfigAIError instance with the wrapped error

    Example:
        >>> try:
        ...     path.read_text()
        ... except OSError as e:
        ...     raise wrap_error(e, "cannot read file", IoError, path=str(path))
    """
    wrapped_context = {
        "original_error": str(error),
        "original_type": type(error).__name__,
        **context
    }
    if issubclass(error_class, StorageError) and "path" in context:
        return error_class(f"{message}: {error}", context=wrapped_context, path=context["path"])
    return error_class(f"{message}: {error}", context=wrapped_context)
