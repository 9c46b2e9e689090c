"""Build service module.

This module provides the high-level build API:
- build_artifact(): compile, sign and package an actor
- sign_artifact(): sign and package an already compiled module

Both write the signed module to a fixed path, package it, and record the
result in the build manifest. A failed step raises immediately; there are
no retries.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from actor_deploy.builds.artifacts import (
    compute_file_hash,
    package_artifact,
    write_build_manifest,
)
from actor_deploy.builds.models import Artifact
from actor_deploy.builds.runner import Compiler, Signer, signed_module_path
from actor_deploy.errors import ArtifactNotFoundError, InvalidCapabilityError
from actor_deploy.keys.store import KeyStore
from actor_deploy.types import KeyRole, normalize_capabilities

logger = logging.getLogger(__name__)

BUILD_MANIFEST_NAME = "build.json"


def validate_capabilities(capabilities: list[str]) -> list[str]:
    """Normalize capability claims, rejecting names without a namespace.

    Raises:
        InvalidCapabilityError: If a claim is malformed.
    """
    try:
        return normalize_capabilities(capabilities)
    except ValueError as e:
        raise InvalidCapabilityError(f"Invalid capability: {e}") from e


def sign_artifact(
    unsigned: Path,
    key_store: KeyStore,
    capabilities: list[str],
    signer: Signer,
    output_dir: Path,
    name: str | None = None,
    release: bool = False,
    bootstrap: Path | None = None,
) -> Artifact:
    """Sign a compiled module and package it.

    Args:
        unsigned: Module produced by the compiler.
        key_store: Source of the issuer (account) and subject (module) keys.
        capabilities: Capability claims to embed.
        signer: Signer collaborator.
        output_dir: Directory for the package, manifest and logs.
        name: Actor name; defaults to the module file stem.
        release: Whether the module came from a release build.
        bootstrap: Optional runtime binary to include in the package.

    Returns:
        The recorded Artifact.

    Raises:
        KeyNotFoundError: If either key is missing.
        SigningFailedError: If the signer fails.
        InvalidCapabilityError: If a capability claim is malformed.
        ArtifactNotFoundError: If the unsigned module is missing.
    """
    claims = validate_capabilities(capabilities)
    if not unsigned.is_file():
        raise ArtifactNotFoundError(f"Unsigned module not found: {unsigned}")

    issuer = key_store.load(KeyRole.ACCOUNT)
    subject = key_store.load(KeyRole.MODULE)
    actor_name = name or unsigned.stem
    signed = signed_module_path(unsigned)

    logger.info(
        "Signing %s as %s with capabilities %s", unsigned.name, actor_name, claims
    )
    signer.sign(
        unsigned,
        signed,
        key_store.seed_path(KeyRole.ACCOUNT),
        key_store.seed_path(KeyRole.MODULE),
        claims,
        actor_name,
        output_dir / "logs",
    )

    content_hash = compute_file_hash(signed)
    package = package_artifact(signed, output_dir, claims, bootstrap=bootstrap)
    package_hash = compute_file_hash(package)
    logger.info("Signed module hash %s, package hash %s", content_hash[:16], package_hash[:16])

    artifact = Artifact(
        name=actor_name,
        unsigned_path=str(unsigned),
        signed_path=str(signed),
        package_path=str(package),
        content_hash=content_hash,
        package_hash=package_hash,
        capabilities=claims,
        issuer=issuer.public_key,
        subject=subject.public_key,
        release=release,
        built_at=datetime.now(timezone.utc),
    )
    write_build_manifest(artifact, output_dir / BUILD_MANIFEST_NAME)
    return artifact


def build_artifact(
    source_dir: Path,
    key_store: KeyStore,
    capabilities: list[str],
    compiler: Compiler,
    signer: Signer,
    output_dir: Path,
    name: str | None = None,
    release: bool = False,
    bootstrap: Path | None = None,
) -> Artifact:
    """Compile, sign and package an actor.

    Capabilities are validated and keys loaded before compiling, so bad
    input fails without a wasted compile.

    Args:
        source_dir: Actor crate directory.
        key_store: Source of the issuer and subject keys.
        capabilities: Capability claims to embed.
        compiler: Compiler collaborator.
        signer: Signer collaborator.
        output_dir: Directory for the package, manifest and logs.
        name: Actor name; defaults to the module file stem.
        release: Build with the release profile.
        bootstrap: Optional runtime binary to include in the package.

    Returns:
        The recorded Artifact.

    Raises:
        InvalidCapabilityError: If a capability claim is malformed.
        KeyNotFoundError: If either key is missing.
        CompilationFailedError: If the compiler fails.
        SigningFailedError: If the signer fails.
    """
    validate_capabilities(capabilities)
    key_store.load(KeyRole.ACCOUNT)
    key_store.load(KeyRole.MODULE)

    logger.info(
        "Compiling %s (%s)", source_dir, "release" if release else "debug"
    )
    unsigned = compiler.compile(source_dir, release, output_dir / "logs")

    return sign_artifact(
        unsigned,
        key_store=key_store,
        capabilities=capabilities,
        signer=signer,
        output_dir=output_dir,
        name=name,
        release=release,
        bootstrap=bootstrap,
    )


__all__ = [
    "BUILD_MANIFEST_NAME",
    "build_artifact",
    "sign_artifact",
    "validate_capabilities",
]
