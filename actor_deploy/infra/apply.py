"""Change application.

apply_changes() executes a change set in order through a provider. Each
confirmed operation is committed to the state store before the next one
starts; when the provider rejects an operation the run stops and the
already-committed operations stay applied. There is no rollback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from actor_deploy.errors import ApplyError, ExternalProviderRejectedError
from actor_deploy.infra.graph import UnresolvedReferenceError, resolve_references
from actor_deploy.infra.models import AppliedResource
from actor_deploy.infra.plan import Change, ChangeSet
from actor_deploy.infra.provider import Provider, ProviderError
from actor_deploy.infra.state import StateStore
from actor_deploy.types import ChangeAction

logger = logging.getLogger(__name__)


@dataclass
class DeployedState:
    """Result of an apply run.

    Attributes:
        resources: Applied resources after the run, keyed by id.
        applied: Changes the provider confirmed.
        skipped: Planned updates that turned out to be no-ops.
        deployment_id: Id of the Deployment record.
    """

    resources: dict[str, AppliedResource] = field(default_factory=dict)
    applied: list[Change] = field(default_factory=list)
    skipped: list[Change] = field(default_factory=list)
    deployment_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "deployment_id": self.deployment_id,
            "applied": [
                {"action": c.action.value, "resource_id": c.resource_id}
                for c in self.applied
            ],
            "skipped": [c.resource_id for c in self.skipped],
            "resources": {
                rid: {"kind": r.kind, "outputs": dict(r.outputs)}
                for rid, r in self.resources.items()
            },
        }


def _resolve(change: Change, store: StateStore) -> dict[str, Any]:
    try:
        return resolve_references(change.after or {}, store.outputs())
    except UnresolvedReferenceError as e:
        raise ApplyError(
            f"Cannot apply '{change.resource_id}': {e}",
        ) from e


def _apply_one(change: Change, provider: Provider, store: StateStore) -> bool:
    """Apply a single change. Returns False if it was a no-op."""
    rid = change.resource_id
    depends_on = list(change.depends_on)

    if change.action is ChangeAction.DELETE:
        record = store.get(rid)
        if record is None:
            return False
        provider.delete(rid, record.kind, dict(record.outputs))
        store.record_delete(rid)
        return True

    attributes = _resolve(change, store)

    if change.action is ChangeAction.UPDATE:
        record = store.get(rid)
        if record is None:
            raise ApplyError(f"Cannot update '{rid}': not in applied state")
        if attributes == record.attributes and depends_on == list(record.depends_on):
            return False
        outputs = provider.update(rid, change.kind, attributes, dict(record.outputs))
        store.record_update(rid, attributes, outputs, depends_on)
        return True

    if change.action is ChangeAction.REPLACE:
        record = store.get(rid)
        if record is not None:
            provider.delete(rid, record.kind, dict(record.outputs))
            store.record_delete(rid)

    outputs = provider.create(rid, change.kind, attributes)
    store.record_create(rid, change.kind, attributes, outputs, depends_on)
    return True


def apply_changes(
    changeset: ChangeSet,
    provider: Provider,
    store: StateStore,
) -> DeployedState:
    """Apply a change set.

    Args:
        changeset: Ordered changes from plan() or plan_destroy().
        provider: Provider executing the operations.
        store: Applied-state store; committed after each operation.

    Returns:
        DeployedState describing the run.

    Raises:
        ExternalProviderRejectedError: If the provider rejects an operation.
        ApplyError: If a reference cannot be resolved at apply time.
    """
    deployment = store.start_deployment(
        changeset.stack, changeset.action, planned=len(changeset.changes)
    )
    result = DeployedState(deployment_id=deployment.id)

    for change in changeset.changes:
        logger.info("%s %s (%s)", change.action.value, change.resource_id, change.kind)
        try:
            changed = _apply_one(change, provider, store)
        except ProviderError as e:
            message = (
                f"Provider rejected {change.action.value} of "
                f"'{change.resource_id}': {e}"
            )
            store.finish_deployment(
                deployment,
                len(result.applied),
                error_code=ExternalProviderRejectedError.code,
                error_message=message,
            )
            logger.error(
                "%s. %d change(s) were applied before the failure",
                message,
                len(result.applied),
            )
            raise ExternalProviderRejectedError(
                message,
                resource_id=change.resource_id,
                applied=len(result.applied),
            ) from e
        except ApplyError as e:
            store.finish_deployment(
                deployment, len(result.applied), error_code=e.code, error_message=str(e)
            )
            raise
        except KeyboardInterrupt:
            store.finish_deployment(
                deployment,
                len(result.applied),
                error_code="cancelled",
                error_message="Interrupted by operator",
            )
            raise

        if changed:
            result.applied.append(change)
        else:
            logger.info("No changes needed for %s", change.resource_id)
            result.skipped.append(change)

    store.finish_deployment(deployment, len(result.applied))
    result.resources = store.load()
    return result


__all__ = ["DeployedState", "apply_changes"]
