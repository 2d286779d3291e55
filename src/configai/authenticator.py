"""
Access-key authentication against a configuration snapshot.

A request presents an opaque key and names a project in its path. The key is
looked up in the snapshot's key index (built once per snapshot, so lookups
are O(1)):

- key unknown (or missing)           -> ``Unauthorized``
- key owned by a different project    -> ``Forbidden``
- key owned by the requested project  -> authorized, ``(project, key)``

The authenticator only reads the snapshot it is given; it never mutates
state and never triggers a reload.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .error_handling import Forbidden, Unauthorized
from .state import ConfigState

logger = logging.getLogger(__name__)


class AuthDecision(Enum):
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AuthOutcome:
    """Result of checking one key against one project.

    Attributes:
        decision: What to do with the request
        owner: Project owning the key, if the key is known
    """
    decision: AuthDecision
    owner: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self.decision is AuthDecision.AUTHORIZED


class KeyAuthenticator:
    """Checks access keys against a snapshot's key index."""

    def check(self, state: ConfigState, key: Optional[str], project: str) -> AuthOutcome:
        """Decide whether ``key`` may read ``project``, without raising."""
        owner = state.owner_of(key) if key else None
        if owner is None:
            return AuthOutcome(AuthDecision.UNAUTHORIZED)
        if owner != project:
            return AuthOutcome(AuthDecision.FORBIDDEN, owner)
        return AuthOutcome(AuthDecision.AUTHORIZED, owner)

    def validate_key(self, state: ConfigState, key: Optional[str]) -> Tuple[str, str]:
        """Resolve the project owning ``key``.

        Returns:
            ``(owner_project, key)``

        Raises:
            Unauthorized: If the key is missing or unknown
        """
        if not key:
            raise Unauthorized("missing api key")
        owner = state.owner_of(key)
        if owner is None:
            raise Unauthorized()
        return owner, key

    def authorize(self, state: ConfigState, key: Optional[str], project: str) -> Tuple[str, str]:
        """Require that ``key`` belongs to ``project``.

        Returns:
            ``(project, key)``

        Raises:
            Unauthorized: If the key is missing or unknown
            Forbidden: If the key belongs to another project
        """
        owner, key = self.validate_key(state, key)
        if owner != project:
            logger.info(
                f"Rejected key owned by '{owner}' for project '{project}'",
                extra={'component': 'KeyAuthenticator', 'action': 'forbidden'}
            )
            raise Forbidden(project)
        return owner, key
