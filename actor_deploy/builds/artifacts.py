"""Artifact hashing, packaging and manifest handling.

This module handles:
- Computing checksums of build outputs
- Writing the host manifest that tells the runtime which actor to load
- Packaging the signed module into a deterministic zip
- Writing and reading the build manifest (build.json)
"""

from __future__ import annotations

import base64
import hashlib
import logging
import zipfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from actor_deploy.builds.models import Artifact
from actor_deploy.errors import ArtifactNotFoundError

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

PACKAGE_NAME = "app.zip"
HOST_MANIFEST_NAME = "manifest.yaml"
BOOTSTRAP_NAME = "bootstrap"

# Fixed zip entry timestamp so identical inputs give identical packages
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o644
EXEC_MODE = 0o755


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def hex_to_base64(digest: str) -> str:
    """Convert a hex digest to the base64 form cloud providers compare."""
    return base64.b64encode(bytes.fromhex(digest)).decode("ascii")


def render_host_manifest(actor_file: str, capabilities: list[str]) -> str:
    """Render the runtime host manifest for a single actor.

    Args:
        actor_file: File name of the signed module inside the package.
        capabilities: Capability claims the actor holds.

    Returns:
        YAML text.
    """
    data: dict[str, Any] = {
        "actors": [actor_file],
        "capabilities": [],
        "claims": sorted(capabilities),
    }
    return yaml.safe_dump(data, sort_keys=True)


def _add_entry(zf: zipfile.ZipFile, name: str, data: bytes, mode: int) -> None:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = (0o100000 | mode) << 16
    info.create_system = 3
    zf.writestr(info, data)


def package_artifact(
    signed_module: Path,
    output_dir: Path,
    capabilities: list[str],
    bootstrap: Path | None = None,
) -> Path:
    """Write the deployable zip.

    Entries are written in sorted order with fixed timestamps and modes,
    so the package hash depends only on the entry contents.

    Args:
        signed_module: Signed module to include.
        output_dir: Directory receiving the package.
        capabilities: Claims recorded in the host manifest.
        bootstrap: Optional custom runtime binary.

    Returns:
        Path to the package.

    Raises:
        ArtifactNotFoundError: If an input file is missing.
    """
    if not signed_module.is_file():
        raise ArtifactNotFoundError(f"Signed module not found: {signed_module}")
    if bootstrap is not None and not bootstrap.is_file():
        raise ArtifactNotFoundError(f"Bootstrap binary not found: {bootstrap}")

    entries: dict[str, tuple[bytes, int]] = {
        signed_module.name: (signed_module.read_bytes(), FILE_MODE),
        HOST_MANIFEST_NAME: (
            render_host_manifest(signed_module.name, capabilities).encode("utf-8"),
            FILE_MODE,
        ),
    }
    if bootstrap is not None:
        entries[BOOTSTRAP_NAME] = (bootstrap.read_bytes(), EXEC_MODE)

    output_dir.mkdir(parents=True, exist_ok=True)
    package_path = output_dir / PACKAGE_NAME
    with zipfile.ZipFile(package_path, "w") as zf:
        for name in sorted(entries):
            data, mode = entries[name]
            _add_entry(zf, name, data, mode)

    logger.info("Packaged %d file(s) into %s", len(entries), package_path)
    return package_path


def write_build_manifest(artifact: Artifact, path: Path) -> Path:
    """Write the artifact record as JSON.

    Args:
        artifact: Artifact to record.
        path: Destination file.

    Returns:
        Path to the written manifest.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(artifact.model_dump_json(indent=2) + "\n", encoding="utf-8")
    logger.info("Wrote build manifest to %s", path)
    return path


def read_build_manifest(path: Path) -> Artifact:
    """Read the artifact record written by the build step.

    Raises:
        ArtifactNotFoundError: If the manifest is missing or invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ArtifactNotFoundError(
            f"No build manifest at {path}. Run 'actor-deploy build' first.",
        ) from None
    try:
        return Artifact.model_validate_json(text)
    except ValidationError as e:
        raise ArtifactNotFoundError(
            f"Build manifest {path} is invalid",
            details=str(e),
        ) from e


__all__ = [
    "BOOTSTRAP_NAME",
    "HOST_MANIFEST_NAME",
    "PACKAGE_NAME",
    "compute_file_hash",
    "hex_to_base64",
    "package_artifact",
    "read_build_manifest",
    "render_host_manifest",
    "write_build_manifest",
]
