"""Shared fixtures and fake collaborators.

The fakes stand in for the compiler, signer, key generator and cloud
provider so the pipeline can be exercised without external binaries.
"""

import hashlib
import json
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from actor_deploy.db import Base
from actor_deploy.errors import CompilationFailedError, SigningFailedError
from actor_deploy.infra import models  # noqa: F401 - registers tables
from actor_deploy.infra.provider import LocalProvider, ProviderError
from actor_deploy.keys.generator import KeyPair, parse_generator_output
from actor_deploy.keys.store import KeyStore
from actor_deploy.types import KeyRole


class FakeKeyGenerator:
    """Produces predictable nkeys-shaped key pairs."""

    def __init__(self) -> None:
        self.counter = 0

    def generate(self, role: KeyRole) -> KeyPair:
        self.counter += 1
        output = (
            f"Public Key: {role.prefix}PUBLIC{self.counter:04d}\n"
            f"Seed: S{role.prefix}SEED{self.counter:04d}\n"
        )
        return parse_generator_output(role, output)


class FakeCompiler:
    """Writes a module derived from the source files."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = 0

    def compile(self, source_dir: Path, release: bool, log_dir: Path) -> Path:
        self.calls += 1
        if self.fail:
            raise CompilationFailedError(
                "Compilation failed with exit code 101",
                details="error[E0425]: cannot find value `x` in this scope",
            )
        digest = hashlib.sha256()
        for path in sorted(source_dir.rglob("*.rs")):
            digest.update(path.read_bytes())
        profile = "release" if release else "debug"
        out_dir = source_dir / "target" / "wasm32-unknown-unknown" / profile
        out_dir.mkdir(parents=True, exist_ok=True)
        module = out_dir / "hello_actor.wasm"
        module.write_bytes(b"\x00asm\x01\x00\x00\x00" + digest.digest())
        return module


class FakeSigner:
    """Appends a token holding the key seeds' digest, claims and name."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict[str, Any]] = []

    def sign(
        self,
        unsigned: Path,
        signed: Path,
        issuer_seed: Path,
        subject_seed: Path,
        capabilities: list[str],
        name: str,
        log_dir: Path,
    ) -> None:
        self.calls.append({"capabilities": list(capabilities), "name": name})
        if self.fail:
            raise SigningFailedError(
                "Signing failed with exit code 1",
                details="invalid seed",
            )
        token = {
            "iss": hashlib.sha256(issuer_seed.read_bytes()).hexdigest(),
            "sub": hashlib.sha256(subject_seed.read_bytes()).hexdigest(),
            "caps": capabilities,
            "name": name,
        }
        signed.write_bytes(
            unsigned.read_bytes() + json.dumps(token, sort_keys=True).encode()
        )


class RecordingProvider(LocalProvider):
    """Local provider that records operations and can reject some kinds."""

    def __init__(self, reject_kinds: set[str] | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.reject_kinds = reject_kinds or set()
        self.operations: list[tuple[str, str]] = []

    def create(self, resource_id, kind, attributes):
        if kind in self.reject_kinds:
            raise ProviderError(f"AccessDenied creating {kind}", resource_id)
        self.operations.append(("create", resource_id))
        return super().create(resource_id, kind, attributes)

    def update(self, resource_id, kind, attributes, outputs):
        if kind in self.reject_kinds:
            raise ProviderError(f"AccessDenied updating {kind}", resource_id)
        self.operations.append(("update", resource_id))
        return super().update(resource_id, kind, attributes, outputs)

    def delete(self, resource_id, kind, outputs):
        self.operations.append(("delete", resource_id))
        super().delete(resource_id, kind, outputs)


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    """Create a session factory for testing."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """Create a session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def key_store(tmp_path) -> KeyStore:
    """Key store with both keys generated."""
    store = KeyStore(tmp_path / ".keys")
    generator = FakeKeyGenerator()
    store.generate(KeyRole.ACCOUNT, generator)
    store.generate(KeyRole.MODULE, generator)
    return store


@pytest.fixture
def actor_source(tmp_path) -> Path:
    """Minimal actor crate."""
    source = tmp_path / "actor"
    (source / "src").mkdir(parents=True)
    (source / "Cargo.toml").write_text(
        '[package]\nname = "hello-actor"\nversion = "0.1.0"\n'
    )
    (source / "src" / "lib.rs").write_text(
        "fn hello_world(_payload: &[u8]) -> Vec<u8> { b\"Hello world\".to_vec() }\n"
    )
    return source


@pytest.fixture
def stack_path() -> Path:
    """The bundled helloworld stack document."""
    return Path(__file__).resolve().parent.parent / "stacks" / "helloworld.yaml"
