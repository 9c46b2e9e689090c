"""Pydantic models for the desired-state document.

A stack document declares the resources to provision::

    name: helloworld
    variables:
      stage: test
    resources:
      - id: function
        kind: lambda_function
        attributes:
          role: ${role.arn}
          source_code_hash: ${var.artifact_hash}

Attribute values may reference another resource's outputs with
``${<resource_id>.<output>}`` and variables with ``${var.<name>}``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from actor_deploy.errors import StackValidationError

RESOURCE_ID_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_\-]*$")
KIND_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
REFERENCE_PATTERN = re.compile(r"\$\{([a-zA-Z][a-zA-Z0-9_\-]*)\.([a-zA-Z0-9_]+)\}")

VAR_NAMESPACE = "var"

# Kinds with special handling in the graph and the output resolver
ROLE_KIND = "iam_role"
FUNCTION_KIND = "lambda_function"
PERMISSION_KIND = "lambda_permission"
REST_API_KIND = "api_gateway_rest_api"
ROUTE_KIND = "api_gateway_resource"
METHOD_KIND = "api_gateway_method"
DEPLOYMENT_KIND = "api_gateway_deployment"


class ResourceSchema(BaseModel):
    """Schema for a declared resource.

    Attributes:
        id: Identity of the resource within the stack.
        kind: Resource type understood by the provider.
        attributes: Desired attribute values (may contain references).
        depends_on: Explicit dependencies in addition to references.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Resource identity")
    kind: str = Field(description="Resource type")
    attributes: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate id format and reserved names."""
        if not RESOURCE_ID_PATTERN.match(v):
            raise ValueError(f"invalid resource id '{v}'")
        if v == VAR_NAMESPACE:
            raise ValueError(f"'{VAR_NAMESPACE}' is reserved for variables")
        return v

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate kind format."""
        if not KIND_PATTERN.match(v):
            raise ValueError(f"invalid resource kind '{v}'")
        return v


class StackSchema(BaseModel):
    """Schema for a desired-state document."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Stack name")
    variables: dict[str, Any] = Field(default_factory=dict)
    resources: list[ResourceSchema] = Field(default_factory=list)

    @field_validator("resources")
    @classmethod
    def validate_unique_ids(cls, v: list[ResourceSchema]) -> list[ResourceSchema]:
        """Reject duplicate resource ids."""
        seen: set[str] = set()
        for resource in v:
            if resource.id in seen:
                raise ValueError(f"duplicate resource id '{resource.id}'")
            seen.add(resource.id)
        return v


def parse_stack_data(data: dict[str, Any]) -> StackSchema:
    """Validate stack data.

    Raises:
        StackValidationError: If the data does not match the schema.
    """
    try:
        return StackSchema.model_validate(data)
    except ValidationError as e:
        raise StackValidationError("Invalid stack document", details=str(e)) from e


def load_stack(path: Path) -> StackSchema:
    """Load and validate a YAML stack document.

    Args:
        path: Path to the document.

    Returns:
        Validated StackSchema.

    Raises:
        StackValidationError: If the file is missing, not YAML, or invalid.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise StackValidationError(f"Stack document not found: {path}") from None
    except yaml.YAMLError as e:
        raise StackValidationError(f"Stack document {path} is not valid YAML", details=str(e)) from e

    if not isinstance(data, dict):
        raise StackValidationError(
            f"Expected a YAML mapping in {path}, got {type(data).__name__}"
        )
    return parse_stack_data(data)


def iter_references(value: Any) -> list[tuple[str, str]]:
    """Return every ``(namespace, name)`` reference inside a value."""
    found: list[tuple[str, str]] = []
    if isinstance(value, str):
        found.extend(REFERENCE_PATTERN.findall(value))
    elif isinstance(value, dict):
        for item in value.values():
            found.extend(iter_references(item))
    elif isinstance(value, list):
        for item in value:
            found.extend(iter_references(item))
    return found


__all__ = [
    "DEPLOYMENT_KIND",
    "FUNCTION_KIND",
    "METHOD_KIND",
    "PERMISSION_KIND",
    "REFERENCE_PATTERN",
    "REST_API_KIND",
    "ROLE_KIND",
    "ROUTE_KIND",
    "VAR_NAMESPACE",
    "ResourceSchema",
    "StackSchema",
    "iter_references",
    "load_stack",
    "parse_stack_data",
]
