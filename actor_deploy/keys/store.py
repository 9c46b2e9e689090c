"""Persistence of key pairs on local disk.

Layout per role inside the key directory:

- ``<role>.txt``: the generator output (public key and seed)
- ``<role>.nk``: the seed alone, handed to the signer

Keys are stored as plain secret material; there is no encryption at rest.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from actor_deploy.errors import KeyGenerationFailedError, KeyNotFoundError
from actor_deploy.keys.generator import (
    PUBLIC_KEY_RE,
    KeyGenerator,
    KeyPair,
)
from actor_deploy.types import KeyRole

logger = logging.getLogger(__name__)

SECRET_FILE_MODE = 0o600


class KeyExistsError(KeyGenerationFailedError):
    """Raised when generating a key would overwrite an existing one."""

    code = "key_exists"


class KeyStore:
    """Reads and writes key pairs in a directory."""

    def __init__(self, key_dir: Path) -> None:
        self.key_dir = key_dir

    def seed_path(self, role: KeyRole) -> Path:
        """Path of the seed-only file for a role."""
        return self.key_dir / f"{role.value}.nk"

    def info_path(self, role: KeyRole) -> Path:
        """Path of the generator output file for a role."""
        return self.key_dir / f"{role.value}.txt"

    def exists(self, role: KeyRole) -> bool:
        """Whether a seed has been persisted for a role."""
        return self.seed_path(role).is_file()

    def save(self, pair: KeyPair) -> Path:
        """Persist a key pair.

        Args:
            pair: Key pair to write.

        Returns:
            Path of the seed file.
        """
        self.key_dir.mkdir(parents=True, exist_ok=True)
        info = pair.raw_output or (
            f"Public Key: {pair.public_key}\nSeed: {pair.seed}\n"
        )
        _write_secret(self.info_path(pair.role), info)
        seed_path = self.seed_path(pair.role)
        _write_secret(seed_path, pair.seed + "\n")
        logger.info("Wrote %s key %s to %s", pair.role.value, pair.public_key, seed_path)
        return seed_path

    def load(self, role: KeyRole) -> KeyPair:
        """Load a persisted key pair.

        Args:
            role: Role to load.

        Returns:
            KeyPair read from disk.

        Raises:
            KeyNotFoundError: If either file is missing or unreadable.
        """
        seed_path = self.seed_path(role)
        info_path = self.info_path(role)
        try:
            seed = seed_path.read_text(encoding="utf-8").strip()
            info = info_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise KeyNotFoundError(
                f"No {role.value} key found (expected {e.filename}). "
                f"Run 'actor-deploy keys-{role.value}' first.",
            ) from None
        except OSError as e:
            raise KeyNotFoundError(f"Cannot read {role.value} key: {e}") from e

        match = PUBLIC_KEY_RE.search(info)
        if not seed or match is None:
            raise KeyNotFoundError(
                f"Key files for {role.value} are incomplete in {self.key_dir}",
            )
        return KeyPair(role=role, seed=seed, public_key=match.group(1), raw_output=info)

    def generate(
        self,
        role: KeyRole,
        generator: KeyGenerator,
        force: bool = False,
    ) -> KeyPair:
        """Generate and persist a key pair for a role.

        Existing keys are kept unless ``force`` is set.

        Raises:
            KeyExistsError: If a key exists and force is not set.
            KeyGenerationFailedError: If the generator fails.
        """
        if self.exists(role) and not force:
            raise KeyExistsError(
                f"A {role.value} key already exists at {self.seed_path(role)}; "
                "use --force to replace it",
            )
        pair = generator.generate(role)
        self.save(pair)
        return pair


def _write_secret(path: Path, content: str) -> None:
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECRET_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    os.chmod(path, SECRET_FILE_MODE)


__all__ = ["KeyExistsError", "KeyStore"]
