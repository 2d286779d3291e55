"""
Environment-variable export of merged configuration.

Each top-level key of a merged configuration becomes one variable:

- Name: uppercased, ``.`` and ``-`` replaced by ``_``, optionally prefixed
  with ``PREFIX_`` (``redis.url`` -> ``REDIS_URL``, ``MY_APP_REDIS_URL``)
- Value: null -> empty string, booleans -> ``true``/``false``, numbers ->
  canonical decimal text, strings -> raw text, arrays and objects -> compact
  JSON in source order

``render_export`` turns the pairs into ``export NAME=VALUE`` lines that a
POSIX shell can ``eval`` or ``source``.
"""

import json
import logging
import re
from typing import Dict, Mapping, Optional

from .value import Value, ValueKind

logger = logging.getLogger(__name__)

# Characters that force a value into double quotes
_NEEDS_QUOTES = re.compile(r'[\s|&;<>()$`\\"\'*?\[\]#~!{}]')

# Characters still special inside double quotes
_ESCAPE_IN_QUOTES = re.compile(r'([\\"$`])')


def env_var_name(key: str, prefix: Optional[str] = None) -> str:
    """Transform a configuration key into a variable name.

    Args:
        key: Top-level configuration key
        prefix: Optional prefix, used verbatim; empty means no prefix

    Returns:
        The variable name
    """
    name = key.upper().replace('.', '_').replace('-', '_')
    if prefix:
        return f"{prefix}_{name}"
    return name


def env_var_value(value: Value) -> str:
    """Render a value as variable text."""
    kind = value.kind
    if kind is ValueKind.NULL:
        return ''
    if kind is ValueKind.BOOL:
        return 'true' if value.data else 'false'
    if kind is ValueKind.NUMBER:
        return json.dumps(value.data)
    if kind is ValueKind.STRING:
        return value.data
    return value.to_json()


def env_vars(merged: Value, prefix: Optional[str] = None) -> Dict[str, str]:
    """Transform a merged configuration object into name -> text pairs.

    Pairs follow the merged key order. When two keys map to the same name
    (``a.b`` and ``a_b``) the later key's value wins and a warning is logged.

    Args:
        merged: Object ``Value`` from the merge engine
        prefix: Optional variable name prefix

    Returns:
        Ordered mapping of variable name to value text
    """
    result: Dict[str, str] = {}
    sources: Dict[str, str] = {}
    for key, value in merged.items():
        name = env_var_name(key, prefix)
        if name in result:
            logger.warning(
                f"Keys '{sources[name]}' and '{key}' both export as {name}; using '{key}'",
                extra={'component': 'EnvExporter', 'action': 'name_collision'}
            )
        result[name] = env_var_value(value)
        sources[name] = key
    return result


def quote_value(text: str) -> str:
    """Quote ``text`` for a shell if it contains whitespace or metacharacters."""
    if not _NEEDS_QUOTES.search(text):
        return text
    return '"' + _ESCAPE_IN_QUOTES.sub(r'\\\1', text) + '"'


def render_export(pairs: Mapping[str, str]) -> str:
    """Render pairs as ``export NAME=VALUE`` lines, one per variable."""
    return "\n".join(f"export {name}={quote_value(text)}" for name, text in pairs.items())
