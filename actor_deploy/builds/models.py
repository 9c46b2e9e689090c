"""Pydantic model for a built artifact.

The artifact record is written to ``build.json`` by the build step and
read back by ``deploy`` to learn the package path and hash.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """A signed, packaged actor module.

    Attributes:
        name: Actor name embedded in the token.
        unsigned_path: Module produced by the compiler.
        signed_path: Module with the embedded token.
        package_path: Deployable zip containing the signed module.
        content_hash: SHA-256 of the signed module.
        package_hash: SHA-256 of the package.
        capabilities: Sorted capability claims.
        issuer: Account public key.
        subject: Module public key.
        release: Whether the release profile was used.
        built_at: When the artifact was produced.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    unsigned_path: str
    signed_path: str
    package_path: str
    content_hash: str = Field(description="SHA-256 of the signed module")
    package_hash: str = Field(description="SHA-256 of the package")
    capabilities: list[str] = Field(default_factory=list)
    issuer: str
    subject: str
    release: bool = False
    built_at: datetime


__all__ = ["Artifact"]
