"""Artifact build module.

This module handles:
- Running the compiler and signer
- Packaging the signed module
- Content hashing and the build manifest
"""

from actor_deploy.builds.models import Artifact

__all__ = ["Artifact"]

# Access submodules via actor_deploy.builds.service, etc.
