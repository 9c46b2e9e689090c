"""Output resolution from applied state.

Reads applied resources only; never talks to the provider.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from actor_deploy.infra.models import AppliedResource
from actor_deploy.infra.schema import DEPLOYMENT_KIND, FUNCTION_KIND, ROUTE_KIND


@dataclass
class StackOutputs:
    """Values exposed after a successful apply.

    Attributes:
        invoke_url: Public URL of the first route.
        function_name: Stable name of the compute function.
        invoke_urls: URL per route resource id.
    """

    invoke_url: str | None = None
    function_name: str | None = None
    invoke_urls: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "invoke_url": self.invoke_url,
            "function_name": self.function_name,
            "invoke_urls": dict(self.invoke_urls),
        }


def _of_kind(
    resources: Mapping[str, AppliedResource], kind: str
) -> list[AppliedResource]:
    return sorted(
        (r for r in resources.values() if r.kind == kind),
        key=lambda r: r.sequence,
    )


def resolve_outputs(resources: Mapping[str, AppliedResource]) -> StackOutputs:
    """Compose the invocation URL and function name.

    Each route is joined to the stage URL of the latest deployment of its
    own API, e.g.
    ``https://<api>.execute-api.<region>.amazonaws.com/test/helloworld``.

    Args:
        resources: Applied resources keyed by id.

    Returns:
        StackOutputs; fields are None when the resources are not applied.
    """
    result = StackOutputs()

    functions = _of_kind(resources, FUNCTION_KIND)
    if functions:
        name = functions[0].outputs.get("function_name")
        result.function_name = str(name) if name is not None else None

    deployments = _of_kind(resources, DEPLOYMENT_KIND)
    if deployments:
        # Latest stage URL per API
        stage_urls: dict[Any, str] = {}
        for deployment in deployments:
            url = str(deployment.outputs.get("invoke_url", "")).rstrip("/")
            if url:
                stage_urls[deployment.attributes.get("rest_api_id")] = url
        latest = str(deployments[-1].outputs.get("invoke_url", "")).rstrip("/")

        for route in _of_kind(resources, ROUTE_KIND):
            api_id = route.attributes.get("rest_api_id")
            base = stage_urls.get(api_id) if api_id is not None else latest
            if not base:
                continue
            path = str(route.outputs.get("path", ""))
            result.invoke_urls[route.resource_id] = base + "/" + path.lstrip("/")
        result.invoke_url = next(iter(result.invoke_urls.values()), latest or None)

    return result


__all__ = ["StackOutputs", "resolve_outputs"]
