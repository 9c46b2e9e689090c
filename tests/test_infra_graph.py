"""Tests for infra/graph.py module."""

import pytest

from actor_deploy.errors import DependencyCycleError, StackValidationError
from actor_deploy.infra.graph import (
    ResourceGraph,
    ResourceNode,
    UnresolvedReferenceError,
    referenced_ids,
    resolve_references,
    substitute_variables,
)
from actor_deploy.infra.schema import load_stack, parse_stack_data

VARIABLES = {
    "stage": "test",
    "log_level": "info",
    "backtrace": "1",
    "artifact_name": "hello_actor",
    "artifact_path": "/build/app.zip",
    "artifact_hash": "q0N8Y2Jx",
}


def _stack(*resources):
    return parse_stack_data({"name": "t", "resources": list(resources)})


class TestSubstitution:
    """Tests for variable and reference substitution."""

    def test_whole_reference_keeps_type(self):
        """A lone reference takes the variable's value as-is."""
        assert substitute_variables({"memory": "${var.memory}"}, {"memory": 128}) == {
            "memory": 128
        }

    def test_interpolation(self):
        """Embedded references are interpolated as text."""
        assert substitute_variables("${var.name}-role", {"name": "hello"}) == "hello-role"

    def test_resource_references_untouched(self):
        """Only variables are replaced."""
        assert substitute_variables("${role.arn}", {}) == "${role.arn}"

    def test_undefined_variable(self):
        """Unknown variables fail validation."""
        with pytest.raises(StackValidationError):
            substitute_variables("${var.missing}", {})

    def test_resolve_references(self):
        """Resource references resolve from outputs."""
        outputs = {"api": {"execution_arn": "arn:x"}, "route": {"path": "/hello"}}
        assert resolve_references(
            "${api.execution_arn}/*/GET${route.path}", outputs
        ) == "arn:x/*/GET/hello"

    def test_unresolved_reference(self):
        """A missing output cannot be resolved."""
        with pytest.raises(UnresolvedReferenceError) as exc_info:
            resolve_references({"a": ["${role.arn}"]}, {"role": {}})
        assert exc_info.value.resource_id == "role"

    def test_referenced_ids(self):
        """Variables are not resource dependencies."""
        assert referenced_ids(
            {"a": "${role.arn}", "b": "${var.stage}", "c": "${role.name}${api.id}"}
        ) == ["role", "api"]


class TestResourceGraph:
    """Tests for ResourceGraph."""

    def test_implicit_edges(self):
        """References add dependencies."""
        graph = ResourceGraph.from_stack(
            _stack(
                {"id": "role", "kind": "iam_role"},
                {"id": "fn", "kind": "lambda_function", "attributes": {"role": "${role.arn}"}},
            )
        )
        assert graph.dependencies("fn") == ("role",)
        assert graph.dependencies("role") == ()

    def test_topological_order(self):
        """Dependencies come first regardless of declaration order."""
        graph = ResourceGraph.from_stack(
            _stack(
                {"id": "b", "kind": "thing", "depends_on": ["a"]},
                {"id": "c", "kind": "thing"},
                {"id": "a", "kind": "thing"},
            )
        )
        assert graph.topological_order() == ["c", "a", "b"]
        assert graph.reverse_topological_order() == ["b", "a", "c"]

    def test_helloworld_order(self, stack_path):
        """The bundled stack is already declared in dependency order."""
        stack = load_stack(stack_path)
        graph = ResourceGraph.from_stack(stack, VARIABLES)
        assert graph.topological_order() == [r.id for r in stack.resources]

    def test_helloworld_permission_ancestors(self, stack_path):
        """The permission transitively depends on the function and route."""
        graph = ResourceGraph.from_stack(load_stack(stack_path), VARIABLES)
        assert {"function", "route", "api", "method"} <= graph.ancestors("permission")

    def test_cycle(self):
        """Cycles are rejected with their members."""
        with pytest.raises(DependencyCycleError) as exc_info:
            ResourceGraph.from_stack(
                _stack(
                    {"id": "a", "kind": "thing", "attributes": {"x": "${b.id}"}},
                    {"id": "b", "kind": "thing", "depends_on": ["a"]},
                    {"id": "c", "kind": "thing"},
                )
            )
        assert exc_info.value.nodes == ["a", "b"]
        assert exc_info.value.exit_code == 7

    def test_dangling_dependency(self):
        """Dependencies must exist."""
        with pytest.raises(StackValidationError):
            ResourceGraph.from_stack(_stack({"id": "a", "kind": "thing", "depends_on": ["z"]}))

    def test_dangling_reference(self):
        """References must name declared resources."""
        with pytest.raises(StackValidationError):
            ResourceGraph.from_stack(
                _stack({"id": "a", "kind": "thing", "attributes": {"x": "${nope.arn}"}})
            )

    def test_permission_without_route(self):
        """A permission must be ordered after the route."""
        with pytest.raises(StackValidationError) as exc_info:
            ResourceGraph.from_stack(
                _stack(
                    {"id": "fn", "kind": "lambda_function"},
                    {
                        "id": "perm",
                        "kind": "lambda_permission",
                        "attributes": {"function_name": "${fn.function_name}"},
                    },
                )
            )
        assert "api_gateway_resource" in exc_info.value.message

    def test_permission_with_transitive_route(self):
        """Transitive dependencies satisfy the ordering rule."""
        graph = ResourceGraph.from_stack(
            _stack(
                {"id": "fn", "kind": "lambda_function"},
                {"id": "route", "kind": "api_gateway_resource"},
                {"id": "method", "kind": "api_gateway_method", "depends_on": ["route"]},
                {"id": "perm", "kind": "lambda_permission", "depends_on": ["fn", "method"]},
            )
        )
        assert graph.topological_order()[-1] == "perm"

    def test_duplicate_node(self):
        """Nodes are unique by identity."""
        graph = ResourceGraph([ResourceNode(id="a", kind="thing")])
        with pytest.raises(StackValidationError):
            graph.add(ResourceNode(id="a", kind="thing"))

    def test_stack_variables_overridden(self):
        """Supplied variables override the document's."""
        stack = parse_stack_data(
            {
                "name": "t",
                "variables": {"stage": "dev"},
                "resources": [
                    {"id": "d", "kind": "thing", "attributes": {"stage_name": "${var.stage}"}}
                ],
            }
        )
        assert ResourceGraph.from_stack(stack).get("d").attributes == {"stage_name": "dev"}
        assert ResourceGraph.from_stack(stack, {"stage": "prod"}).get("d").attributes == {
            "stage_name": "prod"
        }
