"""Key pair generation.

Key material is produced by an external generator (the `nk` tool by
default). The generator is injected wherever keys are created so the
pipeline can be exercised without the real binary.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from actor_deploy.errors import KeyGenerationFailedError
from actor_deploy.types import KeyRole

logger = logging.getLogger(__name__)

PUBLIC_KEY_RE = re.compile(r"^\s*Public Key:\s*(\S+)\s*$", re.MULTILINE)
SEED_RE = re.compile(r"^\s*Seed:\s*(\S+)\s*$", re.MULTILINE)


@dataclass(frozen=True)
class KeyPair:
    """A persisted identity used to sign artifacts.

    Attributes:
        role: Account (issuer) or module (subject).
        seed: Secret seed, stored in plain text.
        public_key: Public identifier embedded in signed artifacts.
        raw_output: Full generator output, kept alongside the seed.
    """

    role: KeyRole
    seed: str
    public_key: str
    raw_output: str = ""

    def __repr__(self) -> str:
        return f"KeyPair(role={self.role.value!r}, public_key={self.public_key!r})"


@runtime_checkable
class KeyGenerator(Protocol):
    """Produces new key pairs for a role."""

    def generate(self, role: KeyRole) -> KeyPair: ...


def parse_generator_output(role: KeyRole, output: str) -> KeyPair:
    """Parse `Public Key:` / `Seed:` lines from generator output.

    Args:
        role: Role the key was generated for.
        output: Generator stdout.

    Returns:
        KeyPair with the parsed seed and public key.

    Raises:
        KeyGenerationFailedError: If a line is missing or the prefixes do
            not match the role.
    """
    public_match = PUBLIC_KEY_RE.search(output)
    seed_match = SEED_RE.search(output)
    if public_match is None or seed_match is None:
        raise KeyGenerationFailedError(
            f"Could not parse {role.value} key from generator output",
            details=output.strip() or None,
        )

    public_key = public_match.group(1)
    seed = seed_match.group(1)

    # Seeds are S<role prefix>..., public keys <role prefix>...
    if not seed.startswith(f"S{role.prefix}"):
        raise KeyGenerationFailedError(
            f"Generated seed does not belong to a {role.value} key",
        )
    if not public_key.startswith(role.prefix):
        raise KeyGenerationFailedError(
            f"Generated public key does not belong to a {role.value} key",
        )

    return KeyPair(role=role, seed=seed, public_key=public_key, raw_output=output)


class NkKeyGenerator:
    """Generates keys by running `nk gen <role>`."""

    def __init__(self, executable: str = "nk", timeout: int | None = 60) -> None:
        self.executable = executable
        self.timeout = timeout

    def command(self, role: KeyRole) -> list[str]:
        """Compose the generator command for a role."""
        return [self.executable, "gen", role.value]

    def generate(self, role: KeyRole) -> KeyPair:
        cmd = self.command(role)
        logger.info("Generating %s key with %s", role.value, " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise KeyGenerationFailedError(
                f"Key generator timed out after {self.timeout}s",
            ) from e
        except subprocess.CalledProcessError as e:
            raise KeyGenerationFailedError(
                f"Key generator exited with code {e.returncode}",
                details=(e.stderr or "").strip() or None,
            ) from e
        except OSError as e:
            raise KeyGenerationFailedError(
                f"Failed to run key generator: {e}",
            ) from e

        return parse_generator_output(role, result.stdout)


__all__ = [
    "KeyGenerator",
    "KeyPair",
    "NkKeyGenerator",
    "parse_generator_output",
]
