"""In-memory resource dependency graph.

Nodes are looked up by resource identity. Edges point from a resource to
the resources it depends on, either explicitly (``depends_on``) or through a
``${id.output}`` reference in its attributes. Apply order is a topological
sort with declaration order breaking ties, so plans are reproducible.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from actor_deploy.errors import DependencyCycleError, StackValidationError
from actor_deploy.infra.schema import (
    FUNCTION_KIND,
    PERMISSION_KIND,
    REFERENCE_PATTERN,
    ROUTE_KIND,
    VAR_NAMESPACE,
    StackSchema,
    iter_references,
)

logger = logging.getLogger(__name__)

# A resource of the key kind may only be created after resources of every
# listed kind it depends on.
REQUIRED_DEPENDENCY_KINDS: dict[str, frozenset[str]] = {
    PERMISSION_KIND: frozenset({FUNCTION_KIND, ROUTE_KIND}),
}


class UnresolvedReferenceError(Exception):
    """Raised when a reference points at an output that is not known yet."""

    def __init__(self, resource_id: str, output: str) -> None:
        super().__init__(f"${{{resource_id}.{output}}} is not known yet")
        self.resource_id = resource_id
        self.output = output


@dataclass
class ResourceNode:
    """A resource in the graph.

    Attributes:
        id: Resource identity.
        kind: Resource type.
        attributes: Attribute values with variables substituted.
        depends_on: Direct dependencies, explicit and implicit.
    """

    id: str
    kind: str
    attributes: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()


def _substitute(value: Any, lookup: Any) -> Any:
    """Replace references in ``value`` using ``lookup(namespace, name)``.

    A string that is exactly one reference takes the referenced value as-is;
    otherwise each reference is interpolated as text.
    """
    if isinstance(value, str):
        whole = REFERENCE_PATTERN.fullmatch(value)
        if whole:
            replaced = lookup(whole.group(1), whole.group(2))
            return value if replaced is None else replaced

        def _interpolate(match: Any) -> str:
            replaced = lookup(match.group(1), match.group(2))
            return match.group(0) if replaced is None else str(replaced)

        return REFERENCE_PATTERN.sub(_interpolate, value)
    if isinstance(value, dict):
        return {k: _substitute(v, lookup) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(v, lookup) for v in value]
    return value


def substitute_variables(value: Any, variables: Mapping[str, Any]) -> Any:
    """Replace ``${var.<name>}`` references, leaving resource references.

    Raises:
        StackValidationError: If a variable is not defined.
    """

    def lookup(namespace: str, name: str) -> Any:
        if namespace != VAR_NAMESPACE:
            return None
        if name not in variables:
            raise StackValidationError(f"Undefined variable: var.{name}")
        return variables[name]

    return _substitute(value, lookup)


def resolve_references(
    value: Any,
    outputs: Mapping[str, Mapping[str, Any]],
) -> Any:
    """Replace resource references with applied output values.

    Args:
        value: Attribute value (variables already substituted).
        outputs: Applied outputs keyed by resource id.

    Returns:
        The value with every reference resolved.

    Raises:
        UnresolvedReferenceError: If a referenced output is not known.
    """

    def lookup(resource_id: str, name: str) -> Any:
        resource_outputs = outputs.get(resource_id)
        if resource_outputs is None or name not in resource_outputs:
            raise UnresolvedReferenceError(resource_id, name)
        return resource_outputs[name]

    return _substitute(value, lookup)


def referenced_ids(attributes: Mapping[str, Any]) -> list[str]:
    """Resource ids referenced by attribute values, in first-seen order."""
    ids: list[str] = []
    for namespace, _ in iter_references(dict(attributes)):
        if namespace != VAR_NAMESPACE and namespace not in ids:
            ids.append(namespace)
    return ids


class ResourceGraph:
    """Directed acyclic graph of resources keyed by identity."""

    def __init__(self, nodes: Iterable[ResourceNode] = ()) -> None:
        self._nodes: dict[str, ResourceNode] = {}
        for node in nodes:
            self.add(node)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes.values())

    def add(self, node: ResourceNode) -> None:
        """Add a node; identities must be unique."""
        if node.id in self._nodes:
            raise StackValidationError(f"Duplicate resource id: {node.id}")
        self._nodes[node.id] = node

    def get(self, resource_id: str) -> ResourceNode:
        """Look up a node by identity."""
        return self._nodes[resource_id]

    @property
    def ids(self) -> list[str]:
        """Resource ids in declaration order."""
        return list(self._nodes)

    def dependencies(self, resource_id: str) -> tuple[str, ...]:
        """Direct dependencies of a resource."""
        return self._nodes[resource_id].depends_on

    def ancestors(self, resource_id: str) -> set[str]:
        """All resources a resource depends on, transitively."""
        seen: set[str] = set()
        stack = list(self.dependencies(resource_id))
        while stack:
            current = stack.pop()
            if current in seen or current not in self._nodes:
                continue
            seen.add(current)
            stack.extend(self.dependencies(current))
        return seen

    def topological_order(self) -> list[str]:
        """Return ids so every resource follows its dependencies.

        Raises:
            DependencyCycleError: If the graph has a cycle.
        """
        position = {rid: i for i, rid in enumerate(self._nodes)}
        remaining = {
            rid: {d for d in node.depends_on if d in self._nodes}
            for rid, node in self._nodes.items()
        }
        order: list[str] = []

        while remaining:
            ready = sorted(
                (rid for rid, deps in remaining.items() if not deps),
                key=position.__getitem__,
            )
            if not ready:
                raise DependencyCycleError(sorted(remaining, key=position.__getitem__))
            # Take one at a time so declaration order decides ties
            chosen = ready[0]
            order.append(chosen)
            del remaining[chosen]
            for deps in remaining.values():
                deps.discard(chosen)

        return order

    def reverse_topological_order(self) -> list[str]:
        """Return ids so every resource precedes its dependencies."""
        return list(reversed(self.topological_order()))

    def validate(self) -> None:
        """Check references, ordering rules and acyclicity.

        Raises:
            StackValidationError: On a dangling dependency or a missing
                required ordering dependency.
            DependencyCycleError: If the graph has a cycle.
        """
        for node in self._nodes.values():
            for dep in node.depends_on:
                if dep not in self._nodes:
                    raise StackValidationError(
                        f"Resource '{node.id}' depends on unknown resource '{dep}'"
                    )

        self.topological_order()

        for node in self._nodes.values():
            required = REQUIRED_DEPENDENCY_KINDS.get(node.kind)
            if not required:
                continue
            kinds = {self._nodes[a].kind for a in self.ancestors(node.id)}
            missing = sorted(required - kinds)
            if missing:
                raise StackValidationError(
                    f"Resource '{node.id}' ({node.kind}) must depend on "
                    f"{', '.join(missing)}"
                )

    @classmethod
    def from_stack(
        cls,
        stack: StackSchema,
        variables: Mapping[str, Any] | None = None,
    ) -> ResourceGraph:
        """Build and validate the graph for a stack document.

        Args:
            stack: Validated stack document.
            variables: Values overriding the document's own variables.

        Returns:
            Validated ResourceGraph.
        """
        merged: dict[str, Any] = dict(stack.variables)
        if variables:
            merged.update(variables)

        graph = cls()
        for resource in stack.resources:
            attributes = substitute_variables(resource.attributes, merged)
            deps: list[str] = []
            for dep in [*resource.depends_on, *referenced_ids(attributes)]:
                if dep not in deps:
                    deps.append(dep)
            graph.add(
                ResourceNode(
                    id=resource.id,
                    kind=resource.kind,
                    attributes=attributes,
                    depends_on=tuple(deps),
                )
            )

        graph.validate()
        logger.debug("Resource graph for %s: %s", stack.name, graph.topological_order())
        return graph

    @classmethod
    def from_applied(cls, records: Mapping[str, Any]) -> ResourceGraph:
        """Build the graph of applied resources from their stored edges.

        Edges to resources no longer applied are dropped.
        """
        return cls(
            ResourceNode(
                id=r.resource_id,
                kind=r.kind,
                attributes=dict(r.attributes),
                depends_on=tuple(d for d in r.depends_on if d in records),
            )
            for r in records.values()
        )


__all__ = [
    "REQUIRED_DEPENDENCY_KINDS",
    "ResourceGraph",
    "ResourceNode",
    "UnresolvedReferenceError",
    "referenced_ids",
    "resolve_references",
    "substitute_variables",
]
