"""Lambda Runtime API client for the deployed actor's host.

The custom runtime polls the Runtime API for invocation events, hands the
body to the actor, and posts back either the response or an error. See
https://docs.aws.amazon.com/lambda/latest/dg/runtimes-api.html
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

API_VERSION = "2018-06-01"
REQUEST_ID_HEADER = "Lambda-Runtime-Aws-Request-Id"
TRACE_ID_HEADER = "Lambda-Runtime-Trace-Id"
# Read by the X-Ray SDK
TRACE_ID_ENV = "_X_AMZN_TRACE_ID"

# https://docs.aws.amazon.com/lambda/latest/dg/current-supported-versions.html
FUNCTION_SETTINGS = (
    "AWS_LAMBDA_FUNCTION_NAME",
    "AWS_LAMBDA_FUNCTION_VERSION",
    "AWS_LAMBDA_LOG_GROUP_NAME",
    "AWS_LAMBDA_LOG_STREAM_NAME",
    "AWS_LAMBDA_RUNTIME_API",
    "LAMBDA_RUNTIME_DIR",
    "LAMBDA_TASK_ROOT",
)


class RuntimeSettingsError(Exception):
    """Raised when a required function setting is missing."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing function setting: {name}")
        self.name = name


def load_function_settings(env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Read the function settings from the Lambda environment.

    Args:
        env: Environment mapping; defaults to os.environ.

    Returns:
        Setting name to value.

    Raises:
        RuntimeSettingsError: If a setting is missing.
    """
    if env is None:
        env = os.environ
    settings: dict[str, str] = {}
    for name in FUNCTION_SETTINGS:
        if name not in env:
            raise RuntimeSettingsError(name)
        settings[name] = env[name]
    return settings


@dataclass
class InvocationEvent:
    """An invocation event received from the Runtime API."""

    body: bytes
    request_id: str | None = None
    trace_id: str | None = None


@dataclass
class InvocationResponse:
    """A successful invocation result."""

    body: bytes
    request_id: str | None = None


@dataclass
class InvocationError:
    """A failed invocation."""

    message: str
    request_id: str | None = None


class LambdaRuntimeClient:
    """HTTP client for the Runtime API endpoint (``host:port``)."""

    def __init__(self, endpoint: str, client: httpx.Client | None = None) -> None:
        self.endpoint = endpoint
        self.client = client or httpx.Client(timeout=None)
        self.dispatched: set[str] = set()

    def _url(self, path: str) -> str:
        return f"http://{self.endpoint}/{API_VERSION}/runtime/invocation/{path}"

    def _log(self, method: str, url: str, response: httpx.Response) -> None:
        logger.info(
            "%s %s %d %s", method, url, response.status_code, response.reason_phrase
        )

    def next_invocation(self) -> InvocationEvent | None:
        """Return the next invocation event, or None on a non-2xx reply."""
        url = self._url("next")
        response = self.client.get(url)
        self._log("GET", url, response)
        if not response.is_success:
            return None
        return InvocationEvent(
            body=response.content,
            request_id=response.headers.get(REQUEST_ID_HEADER),
            trace_id=response.headers.get(TRACE_ID_HEADER),
        )

    def send_response(self, response: InvocationResponse) -> None:
        """Post an invocation response."""
        if response.request_id is None:
            logger.warning("No request ID specified. Unable to send invocation response")
            return
        url = self._url(f"{response.request_id}/response")
        reply = self.client.post(url, content=response.body)
        self._log("POST", url, reply)

    def send_error(self, error: InvocationError) -> None:
        """Post an invocation error."""
        if error.request_id is None:
            logger.warning("No request ID specified. Unable to send invocation error")
            return
        url = self._url(f"{error.request_id}/error")
        reply = self.client.post(url, json={"errorMessage": error.message})
        self._log("POST", url, reply)

    def poll_once(self, handler: Callable[[InvocationEvent], bytes]) -> bool:
        """Fetch one event, run the handler and report the outcome.

        Events without a request ID are dropped, and a request ID is only
        ever handed to the handler once; a repeat is answered with an
        invocation error. The event's trace ID is exported for the X-Ray SDK.

        Args:
            handler: Called with the event; returns the response body.

        Returns:
            False if no event was available, True otherwise.
        """
        event = self.next_invocation()
        if event is None:
            return False
        if event.request_id is None:
            logger.warning("No request ID")
            return True

        if event.trace_id:
            os.environ[TRACE_ID_ENV] = event.trace_id

        if event.request_id in self.dispatched:
            logger.warning("Already dispatched: %s", event.request_id)
            self.send_error(
                InvocationError(
                    message=f"Already dispatched: {event.request_id}",
                    request_id=event.request_id,
                )
            )
            return True
        self.dispatched.add(event.request_id)

        try:
            body = handler(event)
        except Exception as e:
            logger.error("Invocation %s failed: %s", event.request_id, e)
            self.send_error(InvocationError(message=str(e), request_id=event.request_id))
        else:
            self.send_response(InvocationResponse(body=body, request_id=event.request_id))
        return True

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()


__all__ = [
    "FUNCTION_SETTINGS",
    "InvocationError",
    "InvocationEvent",
    "InvocationResponse",
    "LambdaRuntimeClient",
    "RuntimeSettingsError",
    "TRACE_ID_ENV",
    "load_function_settings",
]
