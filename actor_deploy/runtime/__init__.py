"""Client side of the Lambda Runtime API used by the actor host."""

from actor_deploy.runtime.client import LambdaRuntimeClient, load_function_settings

__all__ = ["LambdaRuntimeClient", "load_function_settings"]
