"""Shared type definitions for actor_deploy.

This module contains enums and small value types shared across subpackages
to avoid circular imports.
"""

import re
from dataclasses import dataclass
from enum import Enum

# namespace:capability, e.g. awslambda:event
CAPABILITY_PATTERN = re.compile(r"^[a-z0-9_\-]+:[a-z0-9_\-.]+$")


class KeyRole(str, Enum):
    """Role of a key pair."""

    ACCOUNT = "account"
    MODULE = "module"

    @property
    def prefix(self) -> str:
        """nkeys prefix character for this role."""
        return "A" if self is KeyRole.ACCOUNT else "M"


class ChangeAction(str, Enum):
    """Action planned for a resource."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


class DeploymentAction(str, Enum):
    """Kind of apply run."""

    DEPLOY = "deploy"
    DESTROY = "destroy"


class DeploymentStatus(str, Enum):
    """Status of an apply run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, order=True)
class CapabilityClaim:
    """A namespaced capability the module is authorized to request."""

    name: str

    def __post_init__(self) -> None:
        if not CAPABILITY_PATTERN.match(self.name):
            raise ValueError(
                f"capability must look like 'namespace:name', got '{self.name}'"
            )

    def __str__(self) -> str:
        return self.name


def normalize_capabilities(names: list[str] | tuple[str, ...]) -> list[str]:
    """Validate, de-duplicate and sort capability names.

    Args:
        names: Capability names in any order, possibly repeated.

    Returns:
        Sorted list of unique capability names.

    Raises:
        ValueError: If a name is not namespaced.
    """
    return [str(c) for c in sorted({CapabilityClaim(n.strip()) for n in names})]


__all__ = [
    "CAPABILITY_PATTERN",
    "CapabilityClaim",
    "ChangeAction",
    "DeploymentAction",
    "DeploymentStatus",
    "KeyRole",
    "normalize_capabilities",
]
