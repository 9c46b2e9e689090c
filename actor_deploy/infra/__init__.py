"""Infrastructure provisioning module.

This module handles:
- Loading the desired-state document
- Building the resource dependency graph
- Planning changes against the applied state
- Applying changes through a provider
- Resolving outputs
"""

from actor_deploy.infra.models import AppliedResource, Deployment

__all__ = ["AppliedResource", "Deployment"]
