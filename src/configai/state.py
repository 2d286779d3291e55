"""
Configuration snapshot model and builder.

A ``ConfigState`` is one immutable, fully validated picture of the whole
configuration tree. It is produced in a single pass by ``StateBuilder`` from a
``ScanResult`` and is never modified afterwards; the store replaces it as a
whole on every successful reload.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .error_handling import ProjectNotFound, ValidationError
from .scanner import ScanResult, ScannedProject
from .validation import ProjectMetaValidator, validate_name
from .value import Value

logger = logging.getLogger(__name__)


def _frozen(mapping: Optional[Mapping] = None) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ApiKeyEntry:
    """An access key granting read access to one project."""
    key: str

    def __repr__(self) -> str:
        # Never print full keys in logs or tracebacks
        shown = f"{self.key[:4]}..." if len(self.key) > 8 else "***"
        return f"ApiKeyEntry(key={shown!r})"


@dataclass(frozen=True)
class ProjectMeta:
    """Contents of ``project.yaml``."""
    description: Optional[str] = None
    api_keys: Tuple[ApiKeyEntry, ...] = ()


@dataclass(frozen=True)
class ProjectData:
    """A project's metadata and its environment settings.

    Attributes:
        meta: Parsed ``project.yaml``
        environments: Environment name -> object ``Value`` of raw settings
    """
    meta: ProjectMeta = field(default_factory=ProjectMeta)
    environments: Mapping[str, Value] = field(default_factory=_frozen)


@dataclass(frozen=True)
class ConfigState:
    """One immutable snapshot of the configuration tree.

    Attributes:
        shared: Environment name -> cross-project baseline settings
        projects: Project name -> project data
        key_index: Access key -> owning project name
        root: Directory the snapshot was built from
        generation: Sequence number assigned by the store on publication
    """
    shared: Mapping[str, Value] = field(default_factory=_frozen)
    projects: Mapping[str, ProjectData] = field(default_factory=_frozen)
    key_index: Mapping[str, str] = field(default_factory=_frozen)
    root: Optional[str] = None
    generation: int = 0

    def project_names(self) -> Tuple[str, ...]:
        return tuple(sorted(self.projects))

    def get_project(self, name: str) -> ProjectData:
        """Return a project's data.

        Raises:
            ProjectNotFound: If the snapshot has no such project
        """
        try:
            return self.projects[name]
        except KeyError:
            raise ProjectNotFound(name) from None

    def environment_names(self, project: Optional[str] = None) -> Tuple[str, ...]:
        """Environments visible to ``project`` (shared ones included), sorted.

        With no project, only the shared environments are listed.
        """
        names = set(self.shared)
        if project is not None:
            names.update(self.get_project(project).environments)
        return tuple(sorted(names))

    def owner_of(self, key: str) -> Optional[str]:
        return self.key_index.get(key)

    def with_generation(self, generation: int) -> 'ConfigState':
        return ConfigState(
            shared=self.shared,
            projects=self.projects,
            key_index=self.key_index,
            root=self.root,
            generation=generation,
        )


class StateBuilder:
    """Builds a ``ConfigState`` from a scan result.

    Validation covers project and environment names, the presence and shape of
    each ``project.yaml``, and access-key uniqueness: a key string may appear
    only once in the whole tree. Any violation raises ``ValidationError`` and
    nothing is returned.
    """

    def __init__(self, meta_validator: Optional[ProjectMetaValidator] = None):
        self.meta_validator = meta_validator or ProjectMetaValidator()

    def build(self, scan: ScanResult) -> ConfigState:
        """Validate ``scan`` and assemble the snapshot.

        Args:
            scan: Complete raw tree from ``DirectoryScanner``

        Returns:
            A new immutable snapshot (generation 0)

        Raises:
            ValidationError: If any naming or metadata rule is violated
        """
        for env_name, shared_file in scan.shared.items():
            validate_name('environment', env_name, shared_file.path)

        projects: Dict[str, ProjectData] = {}
        key_index: Dict[str, str] = {}

        for name, scanned in scan.projects.items():
            project = self._build_project(scanned)
            for entry in project.meta.api_keys:
                owner = key_index.get(entry.key)
                if owner is not None:
                    if owner == name:
                        message = f"duplicate api key in project '{name}'"
                    else:
                        message = f"api key in project '{name}' is already used by project '{owner}'"
                    raise ValidationError(
                        message,
                        field='api_keys',
                        path=scanned.meta.path if scanned.meta else scanned.path,
                    )
                key_index[entry.key] = name
            projects[name] = project

        state = ConfigState(
            shared=_frozen({name: f.content for name, f in scan.shared.items()}),
            projects=_frozen(projects),
            key_index=_frozen(key_index),
            root=scan.root,
        )
        logger.debug(
            f"Built snapshot with {len(projects)} projects and {len(key_index)} api keys",
            extra={'component': 'StateBuilder', 'action': 'build'}
        )
        return state

    def _build_project(self, scanned: ScannedProject) -> ProjectData:
        validate_name('project', scanned.name, scanned.path)

        if scanned.meta is None:
            raise ValidationError(
                f"project '{scanned.name}' has no project.yaml",
                path=scanned.path,
            )

        meta_dict = scanned.meta.content.to_python()
        self.meta_validator.validate_meta(meta_dict, path=scanned.meta.path)

        meta = ProjectMeta(
            description=meta_dict.get('description'),
            api_keys=tuple(ApiKeyEntry(key=entry['key']) for entry in meta_dict['api_keys']),
        )

        for env_name, env_file in scanned.environments.items():
            validate_name('environment', env_name, env_file.path)

        return ProjectData(
            meta=meta,
            environments=_frozen({name: f.content for name, f in scanned.environments.items()}),
        )


def build_state(scan: ScanResult) -> ConfigState:
    """Convenience wrapper around ``StateBuilder().build()``."""
    return StateBuilder().build(scan)
