"""
Query surface for the HTTP layer.

These functions implement the three read endpoints without tying them to a
web framework::

    GET /api/v1/projects/{project}/envs/{env}/configs         -> get_all_configs
    GET /api/v1/projects/{project}/envs/{env}/configs/{key}   -> get_single_config
    GET /api/v1/projects/{project}/envs/{env}/export          -> export_env

Each call takes one snapshot from the store and uses it for both the key
check and the lookup, so a reload landing mid-request cannot split them.
Errors are raised as ``ConfigAIError`` subclasses; ``error_response`` maps
them to an HTTP status and a ``{"error": message}`` body.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from .authenticator import KeyAuthenticator
from .constants import API_KEY_HEADER
from .env_export import env_vars, render_export
from .error_handling import (
    AuthError,
    ConfigAIError,
    Forbidden,
    NotFoundError,
    Unauthorized,
    handle_error,
)
from .merge import merge_config, merge_config_item
from .store import ConfigStore

logger = logging.getLogger(__name__)


def api_key_from_headers(headers: Mapping[str, str]) -> str:
    """Extract the access key from request headers (case-insensitive).

    Raises:
        Unauthorized: If the header is missing or empty
    """
    wanted = API_KEY_HEADER.lower()
    for name, value in headers.items():
        if name.lower() == wanted and value:
            return value
    raise Unauthorized(f"missing {API_KEY_HEADER} header")


def status_for(error: Exception) -> int:
    """HTTP status code for an error raised by the query surface."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, Forbidden):
        return 403
    if isinstance(error, AuthError):
        return 401
    return 500


def error_response(error: Exception) -> Tuple[int, Dict[str, str]]:
    """Map an error to ``(status, {"error": message})``.

    Internal errors get a generic message; their details go to the log only.
    """
    status = status_for(error)
    if status == 500 or not isinstance(error, ConfigAIError):
        handle_error(error)
        return 500, {"error": "internal error"}
    logger.debug(f"Request failed with {status}: {error}", extra={'component': 'api', 'status': status})
    return status, {"error": str(error)}


class ConfigAPI:
    """Read endpoints backed by a ``ConfigStore``."""

    def __init__(self, store: ConfigStore, authenticator: Optional[KeyAuthenticator] = None):
        self.store = store
        self.authenticator = authenticator or KeyAuthenticator()

    def get_all_configs(
        self,
        api_key: Optional[str],
        project: str,
        env: str,
        prefix: Optional[str] = None
    ) -> Dict[str, Any]:
        """Merged settings plus their environment-variable form.

        Returns:
            ``{"project", "environment", "configs", "env_vars"}``
        """
        state = self.store.snapshot()
        self.authenticator.authorize(state, api_key, project)
        merged = merge_config(state, project, env)
        return {
            "project": project,
            "environment": env,
            "configs": merged.to_python(),
            "env_vars": env_vars(merged, prefix),
        }

    def get_single_config(self, api_key: Optional[str], project: str, env: str, key: str) -> Dict[str, Any]:
        """One merged setting as ``{"key", "value"}``."""
        state = self.store.snapshot()
        self.authenticator.authorize(state, api_key, project)
        value = merge_config_item(state, project, env, key)
        return {"key": key, "value": value.to_python()}

    def export_env(self, api_key: Optional[str], project: str, env: str, prefix: Optional[str] = None) -> str:
        """Merged settings as ``export NAME=VALUE`` lines."""
        state = self.store.snapshot()
        self.authenticator.authorize(state, api_key, project)
        return render_export(env_vars(merge_config(state, project, env), prefix))

    def handle(self, endpoint: str, headers: Mapping[str, str], **params: Any) -> Tuple[int, Any]:
        """Dispatch one request and convert failures to error payloads.

        Args:
            endpoint: ``"configs"``, ``"config"`` or ``"export"``
            headers: Request headers (for ``X-API-Key``)
            **params: Path and query parameters of the endpoint

        Returns:
            ``(status, body)``; body is a dict, or text for ``export``
        """
        handlers = {
            "configs": self.get_all_configs,
            "config": self.get_single_config,
            "export": self.export_env,
        }
        try:
            handler = handlers[endpoint]
        except KeyError:
            raise ValueError(f"unknown endpoint: {endpoint}") from None

        try:
            return 200, handler(api_key_from_headers(headers), **params)
        except ConfigAIError as e:
            return error_response(e)
