"""Provisioning service.

This module provides the high-level provisioning API used by the CLI:
- deploy(): lock the state, plan, and apply a stack
- destroy(): lock the state and delete everything applied
- current_outputs(): read outputs from applied state

The lock is held for the whole plan+apply so the plan is computed from
the same state it is applied to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from actor_deploy.builds.artifacts import hex_to_base64
from actor_deploy.builds.models import Artifact
from actor_deploy.config import Settings
from actor_deploy.infra.apply import DeployedState, apply_changes
from actor_deploy.infra.graph import ResourceGraph
from actor_deploy.infra.outputs import StackOutputs, resolve_outputs
from actor_deploy.infra.plan import ChangeSet, plan, plan_destroy
from actor_deploy.infra.provider import Provider
from actor_deploy.infra.schema import StackSchema
from actor_deploy.infra.state import StateStore, state_lock

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    """Outcome of deploy() or destroy().

    Attributes:
        changeset: The planned changes.
        state: Apply result; None when only planning.
        outputs: Resolved outputs after the run.
    """

    changeset: ChangeSet
    state: DeployedState | None = None
    outputs: StackOutputs | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "plan": self.changeset.to_dict(),
            "result": self.state.to_dict() if self.state else None,
            "outputs": self.outputs.to_dict() if self.outputs else None,
        }


def stack_variables(artifact: Artifact | None, settings: Settings) -> dict[str, Any]:
    """Variables supplied to the stack document at deploy time.

    Args:
        artifact: Built artifact, if one is needed by the stack.
        settings: Application settings.

    Returns:
        Mapping of variable name to value.
    """
    variables: dict[str, Any] = {
        "region": settings.region,
        "stage": settings.stage,
        "log_level": settings.function_log_level,
        "backtrace": settings.function_backtrace,
    }
    if artifact is not None:
        variables.update(
            {
                "artifact_name": artifact.name,
                "artifact_path": artifact.package_path,
                "artifact_hash": hex_to_base64(artifact.package_hash),
            }
        )
    return variables


def deploy(
    stack: StackSchema,
    variables: dict[str, Any],
    provider: Provider,
    session_factory: sessionmaker[Session],
    lock_path: Path,
    plan_only: bool = False,
) -> DeployResult:
    """Plan and apply a stack.

    Args:
        stack: Validated stack document.
        variables: Values for ``${var.*}`` references.
        provider: Provider executing the operations.
        session_factory: Factory for state sessions.
        lock_path: State lock file.
        plan_only: Stop after planning.

    Returns:
        DeployResult with the plan and, unless plan_only, the apply result.

    Raises:
        StackValidationError: If the document is invalid.
        DependencyCycleError: If the graph has a cycle.
        ConcurrentModificationError: If the state is locked.
        ExternalProviderRejectedError: If the provider rejects an operation.
    """
    graph = ResourceGraph.from_stack(stack, variables)

    with state_lock(lock_path), session_factory() as session:
        store = StateStore(session)
        changeset = plan(graph, store.load(), stack=stack.name)
        logger.info("Plan for %s: %s", stack.name, changeset.summary())

        if plan_only:
            return DeployResult(changeset=changeset)

        if changeset.is_empty:
            logger.info("No changes. Infrastructure is up to date")
            resources = store.load()
            return DeployResult(
                changeset=changeset,
                state=DeployedState(resources=resources),
                outputs=resolve_outputs(resources),
            )

        state = apply_changes(changeset, provider, store)
        return DeployResult(
            changeset=changeset,
            state=state,
            outputs=resolve_outputs(state.resources),
        )


def destroy(
    stack_name: str,
    provider: Provider,
    session_factory: sessionmaker[Session],
    lock_path: Path,
    plan_only: bool = False,
) -> DeployResult:
    """Delete every applied resource, dependents first."""
    with state_lock(lock_path), session_factory() as session:
        store = StateStore(session)
        changeset = plan_destroy(store.load(), stack=stack_name)
        logger.info("Destroy plan for %s: %d resource(s)", stack_name, len(changeset.changes))
        if plan_only or changeset.is_empty:
            return DeployResult(changeset=changeset)
        state = apply_changes(changeset, provider, store)
        return DeployResult(changeset=changeset, state=state)


def current_outputs(session_factory: sessionmaker[Session]) -> StackOutputs:
    """Resolve outputs from the applied state."""
    with session_factory() as session:
        return resolve_outputs(StateStore(session).load())


def deployment_history(
    session_factory: sessionmaker[Session],
    limit: int = 20,
) -> list[dict[str, Any]]:
    """Recent apply runs, newest first, as dictionaries."""
    with session_factory() as session:
        return [d.to_dict() for d in StateStore(session).list_deployments(limit)]


__all__ = [
    "DeployResult",
    "current_outputs",
    "deployment_history",
    "deploy",
    "destroy",
    "stack_variables",
]
