"""Error taxonomy for actor_deploy.

Every error carries a stable string code for programmatic handling and the
process exit code the CLI uses when the error reaches it. Errors are raised
where they occur and propagate unchanged to the CLI boundary.
"""

from typing import Any

# Exit codes, one per failure kind
EXIT_OK = 0
EXIT_COMPILATION_FAILED = 2
EXIT_SIGNING_FAILED = 3
EXIT_KEY_NOT_FOUND = 4
EXIT_KEY_GENERATION_FAILED = 5
EXIT_APPLY_FAILED = 6
EXIT_DEPENDENCY_CYCLE = 7
EXIT_CONCURRENT_MODIFICATION = 8
EXIT_INVALID_STACK = 9
EXIT_ARTIFACT_NOT_FOUND = 10
EXIT_INVALID_CAPABILITY = 11


class ActorDeployError(Exception):
    """Base error for all actor_deploy operations."""

    code = "actor_deploy_error"
    exit_code = 1

    def __init__(
        self,
        message: str,
        details: str | None = None,
        log_path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.log_path = log_path

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        if self.log_path is not None:
            result["log_path"] = self.log_path
        return result


# Build


class BuildError(ActorDeployError):
    """Base error for artifact build failures."""

    code = "build_error"


class CompilationFailedError(BuildError):
    """Raised when the compiler fails or produces no module."""

    code = "compilation_failed"
    exit_code = EXIT_COMPILATION_FAILED


class SigningFailedError(BuildError):
    """Raised when the signer fails or produces no signed module."""

    code = "signing_failed"
    exit_code = EXIT_SIGNING_FAILED


class ArtifactNotFoundError(BuildError):
    """Raised when a build output or build manifest is missing."""

    code = "artifact_not_found"
    exit_code = EXIT_ARTIFACT_NOT_FOUND


class InvalidCapabilityError(BuildError):
    """Raised when a capability claim is not namespaced."""

    code = "invalid_capability"
    exit_code = EXIT_INVALID_CAPABILITY


# Keys


class KeyManagementError(ActorDeployError):
    """Base error for key management."""

    code = "key_error"


class KeyNotFoundError(KeyManagementError):
    """Raised when persisted key material is missing or unreadable."""

    code = "key_not_found"
    exit_code = EXIT_KEY_NOT_FOUND


class KeyGenerationFailedError(KeyManagementError):
    """Raised when the key generator fails or its output cannot be parsed."""

    code = "key_generation_failed"
    exit_code = EXIT_KEY_GENERATION_FAILED


# Apply


class ApplyError(ActorDeployError):
    """Base error for planning and applying the resource graph."""

    code = "apply_failed"
    exit_code = EXIT_APPLY_FAILED


class DependencyCycleError(ApplyError):
    """Raised when the resource graph contains a cycle."""

    code = "dependency_cycle"
    exit_code = EXIT_DEPENDENCY_CYCLE

    def __init__(self, nodes: list[str]) -> None:
        super().__init__(
            f"Dependency cycle between resources: {', '.join(nodes)}",
        )
        self.nodes = nodes


class ExternalProviderRejectedError(ApplyError):
    """Raised when the provider rejects an operation mid-apply.

    Operations committed before the rejection remain in the state store.
    """

    code = "provider_rejected"
    exit_code = EXIT_APPLY_FAILED

    def __init__(
        self,
        message: str,
        resource_id: str | None = None,
        details: str | None = None,
        applied: int = 0,
    ) -> None:
        super().__init__(message, details=details)
        self.resource_id = resource_id
        self.applied = applied


class ConcurrentModificationError(ApplyError):
    """Raised when another invocation holds the state lock."""

    code = "concurrent_modification"
    exit_code = EXIT_CONCURRENT_MODIFICATION


class StackValidationError(ApplyError):
    """Raised when the desired-state document is invalid."""

    code = "invalid_stack"
    exit_code = EXIT_INVALID_STACK


__all__ = [
    "EXIT_APPLY_FAILED",
    "EXIT_ARTIFACT_NOT_FOUND",
    "EXIT_COMPILATION_FAILED",
    "EXIT_CONCURRENT_MODIFICATION",
    "EXIT_DEPENDENCY_CYCLE",
    "EXIT_INVALID_CAPABILITY",
    "EXIT_INVALID_STACK",
    "EXIT_KEY_GENERATION_FAILED",
    "EXIT_KEY_NOT_FOUND",
    "EXIT_OK",
    "EXIT_SIGNING_FAILED",
    "ActorDeployError",
    "ApplyError",
    "ArtifactNotFoundError",
    "BuildError",
    "CompilationFailedError",
    "ConcurrentModificationError",
    "DependencyCycleError",
    "ExternalProviderRejectedError",
    "InvalidCapabilityError",
    "KeyGenerationFailedError",
    "KeyManagementError",
    "KeyNotFoundError",
    "SigningFailedError",
    "StackValidationError",
]
