"""Resource providers.

A provider carries out create/update/delete for one resource at a time and
returns the outputs other resources may reference. The local provider
simulates the cloud API: it assigns deterministic identifiers and computes
the outputs the gateway and function resources expose, which is enough to
drive plans, applies and output resolution end to end.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Protocol, runtime_checkable

from actor_deploy.infra.schema import (
    DEPLOYMENT_KIND,
    FUNCTION_KIND,
    METHOD_KIND,
    PERMISSION_KIND,
    REST_API_KIND,
    ROLE_KIND,
    ROUTE_KIND,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_ID = "000000000000"


class ProviderError(Exception):
    """Raised by a provider that rejects an operation."""

    def __init__(self, message: str, resource_id: str | None = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id


@runtime_checkable
class Provider(Protocol):
    """Executes operations for individual resources."""

    def create(
        self, resource_id: str, kind: str, attributes: dict[str, Any]
    ) -> dict[str, Any]: ...

    def update(
        self,
        resource_id: str,
        kind: str,
        attributes: dict[str, Any],
        outputs: dict[str, Any],
    ) -> dict[str, Any]: ...

    def delete(self, resource_id: str, kind: str, outputs: dict[str, Any]) -> None: ...


def _short_id(*parts: str, length: int = 10) -> str:
    digest = hashlib.sha256("/".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]


class LocalProvider:
    """Simulated provider with deterministic identifiers.

    Args:
        region: Region used in ARNs and URLs.
        account_id: Account used in ARNs.
        stack: Stack name mixed into identifiers.
    """

    def __init__(
        self,
        region: str = "us-east-1",
        account_id: str = DEFAULT_ACCOUNT_ID,
        stack: str = "default",
    ) -> None:
        self.region = region
        self.account_id = account_id
        self.stack = stack

    def _arn(self, service: str, resource: str, regional: bool = True) -> str:
        region = self.region if regional else ""
        return f"arn:aws:{service}:{region}:{self.account_id}:{resource}"

    def _outputs(
        self, resource_id: str, kind: str, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        rid = _short_id(self.stack, kind, resource_id)
        outputs: dict[str, Any] = {"id": rid}

        if kind == ROLE_KIND:
            name = attributes.get("name", resource_id)
            outputs["name"] = name
            outputs["arn"] = self._arn("iam", f"role/{name}", regional=False)
        elif kind == FUNCTION_KIND:
            name = attributes.get("function_name", resource_id)
            arn = self._arn("lambda", f"function:{name}")
            outputs.update(
                {
                    "id": name,
                    "function_name": name,
                    "arn": arn,
                    "invoke_arn": (
                        f"arn:aws:apigateway:{self.region}:lambda:path/"
                        f"2015-03-31/functions/{arn}/invocations"
                    ),
                    "source_code_hash": attributes.get("source_code_hash"),
                }
            )
        elif kind == REST_API_KIND:
            outputs.update(
                {
                    "root_resource_id": _short_id(rid, "root"),
                    "execution_arn": self._arn("execute-api", rid),
                }
            )
        elif kind == ROUTE_KIND:
            path_part = str(attributes.get("path_part", "")).strip("/")
            parent_path = str(attributes.get("parent_path", "")).rstrip("/")
            outputs["path"] = f"{parent_path}/{path_part}"
        elif kind == METHOD_KIND:
            outputs["http_method"] = attributes.get("http_method")
        elif kind == DEPLOYMENT_KIND:
            api_id = attributes.get("rest_api_id", "")
            stage = attributes.get("stage_name", "")
            outputs.update(
                {
                    "stage_name": stage,
                    "invoke_url": (
                        f"https://{api_id}.execute-api.{self.region}"
                        f".amazonaws.com/{stage}"
                    ),
                    "execution_arn": self._arn("execute-api", f"{api_id}/{stage}"),
                }
            )
        elif kind == PERMISSION_KIND:
            outputs["statement_id"] = attributes.get("statement_id", resource_id)
        else:
            outputs["arn"] = self._arn(kind.split("_", 1)[0], f"{kind}/{rid}")

        return outputs

    def create(
        self, resource_id: str, kind: str, attributes: dict[str, Any]
    ) -> dict[str, Any]:
        logger.info("Creating %s (%s)", resource_id, kind)
        return self._outputs(resource_id, kind, attributes)

    def update(
        self,
        resource_id: str,
        kind: str,
        attributes: dict[str, Any],
        outputs: dict[str, Any],
    ) -> dict[str, Any]:
        logger.info("Updating %s (%s)", resource_id, kind)
        updated = dict(outputs)
        updated.update(self._outputs(resource_id, kind, attributes))
        return updated

    def delete(self, resource_id: str, kind: str, outputs: dict[str, Any]) -> None:
        logger.info("Deleting %s (%s)", resource_id, kind)


__all__ = ["DEFAULT_ACCOUNT_ID", "LocalProvider", "Provider", "ProviderError"]
