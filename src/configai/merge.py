"""
Merge engine: effective configuration for a (project, environment) pair.

The merge is a shallow, key-wise overlay of the project's environment
settings on top of the shared baseline for the same environment. A project
value replaces the shared value for that key wholesale, even when both are
objects; nested structures are never combined.
"""

from typing import Dict

from .error_handling import ConfigItemNotFound, EnvironmentNotFound
from .state import ConfigState
from .value import Value


def merge_config(state: ConfigState, project: str, env: str) -> Value:
    """Compute the merged settings for ``project`` in ``env``.

    Key order: shared keys in their original order (an overridden key keeps
    its shared position), then project-only keys in their original order.

    Args:
        state: Snapshot to read from
        project: Project name
        env: Environment name

    Returns:
        An object ``Value`` with the merged settings

    Raises:
        ProjectNotFound: If the project is not in the snapshot
        EnvironmentNotFound: If neither shared nor the project defines ``env``
    """
    project_data = state.get_project(project)

    base = state.shared.get(env)
    overlay = project_data.environments.get(env)
    if base is None and overlay is None:
        raise EnvironmentNotFound(env)

    merged: Dict[str, Value] = {}
    if base is not None:
        merged.update(base.items())
    if overlay is not None:
        # dict assignment keeps the position of an existing key
        merged.update(overlay.items())
    return Value.object(merged)


def merge_config_item(state: ConfigState, project: str, env: str, key: str) -> Value:
    """Look up one key in the merged settings.

    Raises:
        ProjectNotFound, EnvironmentNotFound: As for ``merge_config``
        ConfigItemNotFound: If ``key`` is absent after merging
    """
    value = merge_config(state, project, env).get(key)
    if value is None:
        raise ConfigItemNotFound(key)
    return value
