"""Key management module.

This module handles:
- Generating account (issuer) and module (subject) key pairs
- Persisting them as plain seed files
- Loading them for the signing step
"""

from actor_deploy.keys.generator import KeyGenerator, KeyPair, NkKeyGenerator
from actor_deploy.keys.store import KeyExistsError, KeyStore

__all__ = ["KeyExistsError", "KeyGenerator", "KeyPair", "KeyStore", "NkKeyGenerator"]
