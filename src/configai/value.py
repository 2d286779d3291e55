"""
Tagged configuration values.

Every setting parsed from a YAML file is represented as a ``Value``: a small
immutable wrapper pairing a ``ValueKind`` tag with its payload. Arrays are
stored as tuples and objects as read-only ordered mappings, so a value built
once can be shared between threads without copying.

Key Features:
- Explicit kinds: null, bool, number, string, array, object
- Source order of object keys and array items is preserved
- Canonical compact JSON rendering (``{"max_retries":3}``)
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple


class ValueKind(Enum):
    """Kind tag of a ``Value``."""
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class Value:
    """An immutable, tagged configuration value.

    Attributes:
        kind: Which variant this value is
        data: The payload; ``None``, ``bool``, ``int``/``float``, ``str``,
            a tuple of ``Value`` or a read-only mapping of ``str`` to ``Value``

    Use the constructors (``Value.null()``, ``Value.object(...)`` ...) or
    ``Value.from_python()`` rather than building instances directly.
    """

    kind: ValueKind
    data: Any = None

    # -- constructors ------------------------------------------------------

    @classmethod
    def null(cls) -> 'Value':
        return _NULL

    @classmethod
    def boolean(cls, flag: bool) -> 'Value':
        return cls(ValueKind.BOOL, bool(flag))

    @classmethod
    def number(cls, number: Any) -> 'Value':
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise TypeError(f"expected int or float, got {type(number).__name__}")
        return cls(ValueKind.NUMBER, number)

    @classmethod
    def string(cls, text: str) -> 'Value':
        return cls(ValueKind.STRING, str(text))

    @classmethod
    def array(cls, items: Any = ()) -> 'Value':
        return cls(ValueKind.ARRAY, tuple(items))

    @classmethod
    def object(cls, entries: Optional[Mapping[str, 'Value']] = None) -> 'Value':
        # Copy first so later changes to the caller's dict cannot leak in
        return cls(ValueKind.OBJECT, MappingProxyType(dict(entries or {})))

    @classmethod
    def from_python(cls, obj: Any) -> 'Value':
        """Convert plain Python data (as produced by a YAML/JSON parser).

        Args:
            obj: ``None``, bool, int, float, str, list/tuple or dict

        Returns:
            The equivalent ``Value`` tree

        Raises:
            TypeError: If ``obj`` (or anything nested in it) has another type,
                or a mapping key is not a string
        """
        if isinstance(obj, Value):
            return obj
        if obj is None:
            return _NULL
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, (int, float)):
            return cls.number(obj)
        if isinstance(obj, str):
            return cls.string(obj)
        if isinstance(obj, (list, tuple)):
            return cls.array(cls.from_python(item) for item in obj)
        if isinstance(obj, dict):
            entries = {}
            for key, item in obj.items():
                if not isinstance(key, str):
                    raise TypeError(f"object keys must be strings, got {type(key).__name__}")
                entries[key] = cls.from_python(item)
            return cls.object(entries)
        raise TypeError(f"unsupported value type: {type(obj).__name__}")

    # -- accessors ---------------------------------------------------------

    def items(self) -> Iterator[Tuple[str, 'Value']]:
        """Iterate ``(key, value)`` pairs of an object in source order."""
        self._require(ValueKind.OBJECT)
        return iter(self.data.items())

    def keys(self) -> Tuple[str, ...]:
        self._require(ValueKind.OBJECT)
        return tuple(self.data.keys())

    def get(self, key: str) -> Optional['Value']:
        """Look up ``key`` in an object, returning ``None`` when absent."""
        self._require(ValueKind.OBJECT)
        return self.data.get(key)

    def __len__(self) -> int:
        if self.kind in (ValueKind.ARRAY, ValueKind.OBJECT):
            return len(self.data)
        raise TypeError(f"{self.kind.value} value has no length")

    def _require(self, kind: ValueKind) -> None:
        if self.kind is not kind:
            raise TypeError(f"expected {kind.value} value, got {self.kind.value}")

    # -- conversion --------------------------------------------------------

    def to_python(self) -> Any:
        """Convert back to plain Python data (dicts keep source key order)."""
        if self.kind is ValueKind.ARRAY:
            return [item.to_python() for item in self.data]
        if self.kind is ValueKind.OBJECT:
            return {key: item.to_python() for key, item in self.data.items()}
        return self.data

    def to_json(self) -> str:
        """Render as compact JSON with keys in source order.

        Non-finite floats have no JSON form and render as ``null``.
        """
        return json.dumps(
            _json_safe(self.to_python()),
            separators=(',', ':'),
            ensure_ascii=False,
        )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self.kind is not other.kind:
            return False
        if self.kind is ValueKind.OBJECT:
            # Order is part of a value's identity
            return list(self.data.items()) == list(other.data.items())
        return self.data == other.data

    def __hash__(self) -> int:
        if self.kind is ValueKind.OBJECT:
            return hash((self.kind, tuple(self.data.items())))
        return hash((self.kind, self.data))

    def __repr__(self) -> str:
        return f"Value({self.kind.value}, {self.to_python()!r})"


_NULL = Value(ValueKind.NULL, None)

EMPTY_OBJECT = Value.object()


def _json_safe(obj: Any) -> Any:
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    if isinstance(obj, list):
        return [_json_safe(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _json_safe(item) for key, item in obj.items()}
    return obj
