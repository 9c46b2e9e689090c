"""Tests for the database helpers."""

from datetime import datetime

from sqlalchemy import inspect

from actor_deploy.db import create_all_tables, get_engine, get_session_factory
from actor_deploy.infra.models import AppliedResource


def _resource(resource_id: str) -> AppliedResource:
    now = datetime(2024, 1, 1)
    return AppliedResource(
        resource_id=resource_id,
        kind="iam_role",
        attributes={"name": resource_id},
        outputs={},
        depends_on=[],
        sequence=1,
        created_at=now,
        updated_at=now,
    )


class TestEngine:
    """Tests for engine creation."""

    def test_creates_parent_directory(self, tmp_path):
        """A file database gets its directory created."""
        db_path = tmp_path / "nested" / "state.sqlite"
        engine = get_engine(f"sqlite:///{db_path}")
        create_all_tables(engine)

        assert db_path.parent.is_dir()
        assert "applied_resources" in inspect(engine).get_table_names()
        assert "deployments" in inspect(engine).get_table_names()

    def test_memory_database(self):
        """An in-memory database needs no directory."""
        engine = get_engine("sqlite:///:memory:")
        create_all_tables(engine)
        assert "applied_resources" in inspect(engine).get_table_names()

    def test_default_url_from_settings(self, tmp_path, monkeypatch):
        """Without a URL the state directory from settings is used."""
        monkeypatch.setenv("ACTOR_DEPLOY_STATE_DIR", str(tmp_path / "state"))
        engine = get_engine()
        create_all_tables(engine)
        assert (tmp_path / "state").is_dir()


class TestSessionFactory:
    """Tests for get_session_factory."""

    def test_objects_survive_commit(self, tmp_path):
        """Committed objects stay readable after the session commits."""
        engine = get_engine(f"sqlite:///{tmp_path / 'state.sqlite'}")
        create_all_tables(engine)
        factory = get_session_factory(engine)

        with factory() as session:
            record = _resource("role")
            session.add(record)
            session.commit()
            assert record.attributes == {"name": "role"}

        with factory() as session:
            assert session.get(AppliedResource, "role") is not None
