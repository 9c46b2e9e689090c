"""Actor Deploy - build, sign and provision a WebAssembly actor on AWS Lambda.

This package provides orchestration around the actor toolchain (compiler,
signer, key generator) and a small reconciler for the cloud resource graph
that invokes the signed module.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
