"""Tests for builds/artifacts.py module."""

import base64
import hashlib
import zipfile
from datetime import datetime, timezone

import pytest
import yaml

from actor_deploy.builds.artifacts import (
    HOST_MANIFEST_NAME,
    compute_file_hash,
    hex_to_base64,
    package_artifact,
    read_build_manifest,
    render_host_manifest,
    write_build_manifest,
)
from actor_deploy.builds.models import Artifact
from actor_deploy.errors import ArtifactNotFoundError


@pytest.fixture
def signed_module(tmp_path):
    """A signed module on disk."""
    path = tmp_path / "target" / "hello_actor_signed.wasm"
    path.parent.mkdir()
    path.write_bytes(b"\x00asm\x01\x00\x00\x00signed")
    return path


class TestComputeFileHash:
    """Tests for compute_file_hash."""

    def test_matches_hashlib(self, tmp_path):
        """Should equal a one-shot sha256."""
        path = tmp_path / "f"
        path.write_bytes(b"x" * 200_000)
        assert compute_file_hash(path) == hashlib.sha256(b"x" * 200_000).hexdigest()

    def test_small_chunks(self, tmp_path):
        """Chunk size should not change the digest."""
        path = tmp_path / "f"
        path.write_bytes(b"abcdef")
        assert compute_file_hash(path, chunk_size=2) == compute_file_hash(path)

    def test_hex_to_base64(self):
        """Should encode the raw digest bytes."""
        digest = hashlib.sha256(b"abc").hexdigest()
        assert hex_to_base64(digest) == base64.b64encode(hashlib.sha256(b"abc").digest()).decode()


class TestHostManifest:
    """Tests for render_host_manifest."""

    def test_lists_actor_and_claims(self):
        """Should name the actor file and its sorted claims."""
        data = yaml.safe_load(
            render_host_manifest("a_signed.wasm", ["wascc:logging", "awslambda:event"])
        )
        assert data["actors"] == ["a_signed.wasm"]
        assert data["claims"] == ["awslambda:event", "wascc:logging"]
        assert data["capabilities"] == []


class TestPackageArtifact:
    """Tests for package_artifact."""

    def test_contents(self, signed_module, tmp_path):
        """Package should hold the module and the host manifest."""
        package = package_artifact(signed_module, tmp_path / "out", ["wascc:logging"])

        with zipfile.ZipFile(package) as zf:
            assert zf.namelist() == [HOST_MANIFEST_NAME, "hello_actor_signed.wasm"]
            assert zf.read("hello_actor_signed.wasm") == signed_module.read_bytes()

    def test_deterministic(self, signed_module, tmp_path):
        """Packaging the same inputs twice should give the same bytes."""
        first = compute_file_hash(package_artifact(signed_module, tmp_path / "a", ["wascc:logging"]))
        second = compute_file_hash(package_artifact(signed_module, tmp_path / "b", ["wascc:logging"]))
        assert first == second

    def test_claims_change_hash(self, signed_module, tmp_path):
        """Different claims should give a different package."""
        first = compute_file_hash(package_artifact(signed_module, tmp_path / "a", ["wascc:logging"]))
        second = compute_file_hash(package_artifact(signed_module, tmp_path / "b", []))
        assert first != second

    def test_bootstrap_is_executable(self, signed_module, tmp_path):
        """Bootstrap binary should be packaged with an executable mode."""
        bootstrap = tmp_path / "bootstrap-bin"
        bootstrap.write_bytes(b"\x7fELF")
        package = package_artifact(signed_module, tmp_path / "out", [], bootstrap=bootstrap)

        with zipfile.ZipFile(package) as zf:
            info = zf.getinfo("bootstrap")
            assert (info.external_attr >> 16) & 0o777 == 0o755

    def test_missing_module(self, tmp_path):
        """Should refuse to package a missing module."""
        with pytest.raises(ArtifactNotFoundError):
            package_artifact(tmp_path / "nope.wasm", tmp_path / "out", [])

    def test_missing_bootstrap(self, signed_module, tmp_path):
        """Should refuse a bootstrap path that does not exist."""
        with pytest.raises(ArtifactNotFoundError):
            package_artifact(signed_module, tmp_path / "out", [], bootstrap=tmp_path / "nope")


class TestBuildManifest:
    """Tests for build manifest read/write."""

    def _artifact(self) -> Artifact:
        return Artifact(
            name="hello_actor",
            unsigned_path="/t/hello_actor.wasm",
            signed_path="/t/hello_actor_signed.wasm",
            package_path="/b/app.zip",
            content_hash="a" * 64,
            package_hash="b" * 64,
            capabilities=["awslambda:event"],
            issuer="APUBLIC0001",
            subject="MPUBLIC0002",
            release=False,
            built_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def test_roundtrip(self, tmp_path):
        """A written manifest should read back equal."""
        artifact = self._artifact()
        path = write_build_manifest(artifact, tmp_path / "out" / "build.json")
        assert read_build_manifest(path) == artifact

    def test_missing(self, tmp_path):
        """A missing manifest means nothing was built."""
        with pytest.raises(ArtifactNotFoundError) as exc_info:
            read_build_manifest(tmp_path / "build.json")
        assert exc_info.value.exit_code == 10

    def test_invalid(self, tmp_path):
        """A manifest with the wrong shape is rejected."""
        path = tmp_path / "build.json"
        path.write_text('{"name": "x"}')
        with pytest.raises(ArtifactNotFoundError):
            read_build_manifest(path)
