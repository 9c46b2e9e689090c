"""Change planning.

plan() diffs the desired graph against the last-known applied state by
identity and resolved attribute equality. Creates, updates and replaces
come first in topological order. Deletes of resources dropped from the
document come last, dependents before their dependencies, so every kept
resource has been re-pointed away from a resource before it is deleted.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from actor_deploy.infra.graph import (
    ResourceGraph,
    UnresolvedReferenceError,
    referenced_ids,
    resolve_references,
)
from actor_deploy.infra.models import AppliedResource
from actor_deploy.types import ChangeAction, DeploymentAction


@dataclass
class Change:
    """A planned operation on one resource.

    Attributes:
        action: create, update, replace or delete.
        resource_id: Resource identity.
        kind: Resource type (the new kind for a replace).
        before: Attributes last applied, if any.
        after: Desired attributes; references are resolved during apply.
        depends_on: Direct dependencies in the desired graph.
        unknown: True when some inputs are only known after apply.
    """

    action: ChangeAction
    resource_id: str
    kind: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    depends_on: tuple[str, ...] = ()
    unknown: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "action": self.action.value,
            "resource_id": self.resource_id,
            "kind": self.kind,
            "before": self.before,
            "after": self.after,
            "depends_on": list(self.depends_on),
            "unknown": self.unknown,
        }


@dataclass
class ChangeSet:
    """Ordered changes for one apply run."""

    stack: str
    action: DeploymentAction
    changes: list[Change] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Whether there is nothing to apply."""
        return not self.changes

    def summary(self) -> dict[str, int]:
        """Number of changes per action."""
        counts = Counter(c.action.value for c in self.changes)
        return {action.value: counts.get(action.value, 0) for action in ChangeAction}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "stack": self.stack,
            "action": self.action.value,
            "summary": self.summary(),
            "changes": [c.to_dict() for c in self.changes],
        }


def _delete_change(record: AppliedResource) -> Change:
    return Change(
        action=ChangeAction.DELETE,
        resource_id=record.resource_id,
        kind=record.kind,
        before=dict(record.attributes),
        depends_on=tuple(record.depends_on),
    )


def plan(
    graph: ResourceGraph,
    applied: Mapping[str, AppliedResource],
    stack: str = "default",
) -> ChangeSet:
    """Plan the changes that reconcile applied state with the graph.

    Args:
        graph: Validated desired graph.
        applied: Last-known applied resources keyed by id.
        stack: Stack name for the change set.

    Returns:
        Ordered ChangeSet; empty when nothing differs.

    Raises:
        DependencyCycleError: If either graph has a cycle.
    """
    changes: list[Change] = []
    outputs = {rid: dict(r.outputs) for rid, r in applied.items()}
    # Resources whose outputs may differ after this run
    pending: set[str] = set()

    for rid in graph.topological_order():
        node = graph.get(rid)
        record = applied.get(rid)

        if record is None:
            changes.append(
                Change(
                    action=ChangeAction.CREATE,
                    resource_id=rid,
                    kind=node.kind,
                    after=node.attributes,
                    depends_on=node.depends_on,
                    unknown=any(d in pending for d in referenced_ids(node.attributes)),
                )
            )
            pending.add(rid)
            continue

        if record.kind != node.kind:
            changes.append(
                Change(
                    action=ChangeAction.REPLACE,
                    resource_id=rid,
                    kind=node.kind,
                    before=dict(record.attributes),
                    after=node.attributes,
                    depends_on=node.depends_on,
                    unknown=any(d in pending for d in referenced_ids(node.attributes)),
                )
            )
            pending.add(rid)
            continue

        unknown = any(d in pending for d in referenced_ids(node.attributes))
        if not unknown:
            try:
                resolved = resolve_references(node.attributes, outputs)
            except UnresolvedReferenceError:
                unknown = True
            else:
                if resolved == record.attributes and list(node.depends_on) == list(
                    record.depends_on
                ):
                    continue

        changes.append(
            Change(
                action=ChangeAction.UPDATE,
                resource_id=rid,
                kind=node.kind,
                before=dict(record.attributes),
                after=node.attributes,
                depends_on=node.depends_on,
                unknown=unknown,
            )
        )
        pending.add(rid)

    # Kept dependents no longer point at removed resources once the
    # updates above are applied
    removed = {rid for rid in applied if rid not in graph}
    if removed:
        for rid in ResourceGraph.from_applied(applied).reverse_topological_order():
            if rid in removed:
                changes.append(_delete_change(applied[rid]))

    return ChangeSet(stack=stack, action=DeploymentAction.DEPLOY, changes=changes)


def plan_destroy(
    applied: Mapping[str, AppliedResource],
    stack: str = "default",
) -> ChangeSet:
    """Plan deletion of every applied resource, dependents first."""
    changes = [
        _delete_change(applied[rid])
        for rid in ResourceGraph.from_applied(applied).reverse_topological_order()
    ]
    return ChangeSet(stack=stack, action=DeploymentAction.DESTROY, changes=changes)


__all__ = ["Change", "ChangeSet", "plan", "plan_destroy"]
