"""
Directory scanner for configai.

Walks a configuration root laid out as::

    <root>/shared/<env>.yaml
    <root>/projects/<project>/project.yaml
    <root>/projects/<project>/<env>.yaml

and parses every YAML file into a ``Value`` tree. The scan is all-or-nothing:
the first malformed, unreadable or conflicting file aborts it with a
``StorageError`` naming the offending path, and no partial result is returned.
"""

import datetime
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from yaml.constructor import ConstructorError

from .constants import (
    MAX_EXPANDED_VALUES,
    MAX_NESTING_DEPTH,
    PROJECTS_DIR,
    PROJECT_META_NAME,
    SHARED_DIR,
    YAML_EXTENSIONS,
)
from .error_handling import IoError, StorageError, wrap_error
from .value import EMPTY_OBJECT, Value

logger = logging.getLogger(__name__)

# YAML 1.2 core schema: no yes/no/on/off booleans, no sexagesimal or
# leading-zero octal numbers, no implicit timestamps or merge keys
_CORE_SCHEMA_RESOLVERS = [
    ('tag:yaml.org,2002:null',
     r'^(?:~|null|Null|NULL|)$',
     ['~', 'n', 'N', '']),
    ('tag:yaml.org,2002:bool',
     r'^(?:true|True|TRUE|false|False|FALSE)$',
     list('tTfF')),
    ('tag:yaml.org,2002:int',
     r'^(?:[-+]?[0-9]+|0o[0-7]+|0x[0-9a-fA-F]+)$',
     list('-+0123456789')),
    ('tag:yaml.org,2002:float',
     r'^(?:[-+]?(?:\.[0-9]+|[0-9]+(?:\.[0-9]*)?)(?:[eE][-+]?[0-9]+)?'
     r'|[-+]?\.(?:inf|Inf|INF)|\.(?:nan|NaN|NAN))$',
     list('-+0123456789.')),
]


class _ConfigLoader(yaml.SafeLoader):
    """Safe loader resolving plain scalars by the YAML 1.2 core schema.

    Mapping keys are turned into text as they are read (``1`` -> ``"1"``),
    and a key that repeats within one mapping, before or after that
    conversion, is a parse error.
    """

    def construct_mapping(self, node: yaml.Node, deep: bool = False) -> Dict[str, Any]:
        if not isinstance(node, yaml.MappingNode):
            raise ConstructorError(
                None, None, f"expected a mapping node, but found {node.id}", node.start_mark
            )

        mapping: Dict[str, Any] = {}
        for key_node, value_node in node.value:
            key = self.construct_object(key_node, deep=True)
            try:
                text = _key_text(key)
            except (TypeError, ValueError) as e:
                raise ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    f"unsupported key: {e}", key_node.start_mark
                ) from None
            if text in mapping:
                raise ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    f"found duplicate key {text!r}", key_node.start_mark
                )
            mapping[text] = self.construct_object(value_node, deep=deep)
        return mapping


def _construct_bool(loader: _ConfigLoader, node: yaml.Node) -> bool:
    text = loader.construct_scalar(node)
    if text.lower() not in ('true', 'false'):
        raise ConstructorError(None, None, f"invalid boolean {text!r}", node.start_mark)
    return text.lower() == 'true'


def _construct_int(loader: _ConfigLoader, node: yaml.Node) -> int:
    text = loader.construct_scalar(node)
    try:
        if text.startswith('0o'):
            return int(text[2:], 8)
        if text.startswith('0x'):
            return int(text[2:], 16)
        return int(text, 10)
    except ValueError:
        raise ConstructorError(None, None, f"invalid integer {text!r}", node.start_mark) from None


def _construct_float(loader: _ConfigLoader, node: yaml.Node) -> float:
    text = loader.construct_scalar(node)
    try:
        # .inf / -.inf / .nan -> forms float() understands
        return float(text.lower().replace('.inf', 'inf').replace('.nan', 'nan'))
    except ValueError:
        raise ConstructorError(None, None, f"invalid float {text!r}", node.start_mark) from None


_ConfigLoader.yaml_implicit_resolvers = {}
for _tag, _pattern, _first in _CORE_SCHEMA_RESOLVERS:
    _ConfigLoader.add_implicit_resolver(_tag, re.compile(_pattern), _first)

_ConfigLoader.add_constructor('tag:yaml.org,2002:bool', _construct_bool)
_ConfigLoader.add_constructor('tag:yaml.org,2002:int', _construct_int)
_ConfigLoader.add_constructor('tag:yaml.org,2002:float', _construct_float)


@dataclass
class ScannedFile:
    """One parsed YAML file.

    Attributes:
        name: File name with the extension stripped
        path: Full path of the file
        content: Parsed top-level mapping
    """
    name: str
    path: str
    content: Value


@dataclass
class ScannedProject:
    """A project directory and the files found in it."""
    name: str
    path: str
    meta: Optional[ScannedFile] = None
    environments: Dict[str, ScannedFile] = field(default_factory=dict)


@dataclass
class ScanResult:
    """Raw tree produced by one complete scan.

    Attributes:
        root: The scanned configuration root
        shared: Environment name -> shared settings file
        projects: Project name -> scanned project
        file_count: Number of YAML files parsed
    """
    root: str
    shared: Dict[str, ScannedFile] = field(default_factory=dict)
    projects: Dict[str, ScannedProject] = field(default_factory=dict)
    file_count: int = 0


def is_yaml_file(name: str) -> bool:
    """Check whether a file name is a visible ``.yaml``/``.yml`` file."""
    return not name.startswith('.') and name.endswith(YAML_EXTENSIONS)


def strip_extension(name: str) -> str:
    return os.path.splitext(name)[0]


def load_yaml_file(path: Union[str, Path]) -> Value:
    """Read and parse one YAML configuration file.

    An empty file yields an empty object.

    Args:
        path: File to read

    Returns:
        The file's top-level mapping as an object ``Value``

    Raises:
        IoError: If the file cannot be read
        StorageError: If the YAML is malformed or not a mapping
    """
    path = str(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise wrap_error(e, f"cannot read {path}", IoError, path=path) from e

    try:
        data = yaml.load(text, Loader=_ConfigLoader)
    except yaml.YAMLError as e:
        raise StorageError(f"invalid YAML in {path}: {e}", path=path) from e
    except RecursionError as e:
        raise StorageError(f"YAML in {path} is nested too deeply", path=path) from e

    if data is None:
        return EMPTY_OBJECT
    if not isinstance(data, dict):
        raise StorageError(
            f"top-level YAML in {path} must be a mapping, got {type(data).__name__}",
            path=path
        )

    try:
        return Value.from_python(_Normalizer().normalize(data))
    except (TypeError, ValueError) as e:
        raise StorageError(f"unsupported value in {path}: {e}", path=path) from e


class _Normalizer:
    """Brings parser output into the shapes ``Value.from_python`` accepts.

    Aliases are expanded here, so a short document can stand for a cyclic
    or enormous tree. Both are cut off with a ``ValueError`` once the nesting
    depth or the number of expanded values passes its limit.
    """

    def __init__(self) -> None:
        self.count = 0

    def normalize(self, obj: Any, depth: int = 0) -> Any:
        if depth > MAX_NESTING_DEPTH:
            raise ValueError(f"nesting deeper than {MAX_NESTING_DEPTH} levels (recursive alias?)")
        self.count += 1
        if self.count > MAX_EXPANDED_VALUES:
            raise ValueError(f"more than {MAX_EXPANDED_VALUES} values after alias expansion")

        if isinstance(obj, dict):
            return {_key_text(key): self.normalize(item, depth + 1) for key, item in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self.normalize(item, depth + 1) for item in obj]
        if isinstance(obj, (datetime.date, datetime.datetime)):
            # Only reachable through an explicit !!timestamp tag
            return obj.isoformat()
        return obj


def _key_text(key: Any) -> str:
    if isinstance(key, str):
        return key
    # 1 -> "1", true -> "true", null -> "null"
    return Value.from_python(_Normalizer().normalize(key)).to_json()


class DirectoryScanner:
    """Scans a configuration root into a ``ScanResult``.

    Entries are visited in sorted order so two scans of an unchanged tree
    produce identical results. Hidden files, non-YAML files and nested
    directories are ignored; missing ``shared/`` or ``projects/`` directories
    are treated as empty.

    Example:
        >>> result = DirectoryScanner("./config").scan()
        >>> sorted(result.projects)
        ['billing', 'web']
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def scan(self) -> ScanResult:
        """Scan the whole tree.

        Returns:
            The complete raw tree

        Raises:
            StorageError: On the first structural or parse failure
        """
        if not self.root.exists():
            raise StorageError(f"config root does not exist: {self.root}", path=str(self.root))
        if not self.root.is_dir():
            raise StorageError(f"config root is not a directory: {self.root}", path=str(self.root))

        result = ScanResult(root=str(self.root))
        result.shared = self._scan_env_files(self.root / SHARED_DIR, result)

        projects_dir = self.root / PROJECTS_DIR
        for entry in self._list_dir(projects_dir):
            if entry.name.startswith('.') or not entry.is_dir():
                continue
            project = self._scan_project(Path(entry.path), result)
            result.projects[project.name] = project

        logger.debug(
            f"Scanned {result.file_count} files under {self.root}",
            extra={'component': 'DirectoryScanner', 'action': 'scan',
                   'projects': len(result.projects), 'shared_envs': len(result.shared)}
        )
        return result

    def _scan_project(self, project_dir: Path, result: ScanResult) -> ScannedProject:
        project = ScannedProject(name=project_dir.name, path=str(project_dir))
        files = self._scan_env_files(project_dir, result)

        meta = files.pop(PROJECT_META_NAME, None)
        project.meta = meta
        project.environments = files
        return project

    def _scan_env_files(self, directory: Path, result: ScanResult) -> Dict[str, ScannedFile]:
        files: Dict[str, ScannedFile] = {}
        for entry in self._list_dir(directory):
            if not is_yaml_file(entry.name) or not entry.is_file():
                continue

            name = strip_extension(entry.name)
            if name in files:
                raise StorageError(
                    f"duplicate environment '{name}' in {directory}: "
                    f"{os.path.basename(files[name].path)} and {entry.name}",
                    path=entry.path
                )

            files[name] = ScannedFile(name=name, path=entry.path, content=load_yaml_file(entry.path))
            result.file_count += 1
        return files

    def _list_dir(self, directory: Path) -> List[os.DirEntry]:
        try:
            with os.scandir(directory) as it:
                return sorted(it, key=lambda entry: entry.name)
        except FileNotFoundError:
            return []
        except NotADirectoryError as e:
            raise StorageError(f"expected a directory: {directory}", path=str(directory)) from e
        except OSError as e:
            raise wrap_error(e, f"cannot list {directory}", IoError, path=str(directory)) from e
