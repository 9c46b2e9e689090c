"""Database engine and session management for actor_deploy.

This module provides SQLAlchemy engine creation, session factory,
and base model class for the applied-state ORM models.
"""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from actor_deploy.config import get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def get_engine(db_url: str | None = None) -> Any:
    """Create and return a SQLAlchemy engine.

    Args:
        db_url: Database URL. If not provided, uses settings default.

    Returns:
        SQLAlchemy Engine instance.
    """
    if db_url is None:
        db_url = get_settings().effective_state_db_url

    connect_args: dict[str, Any] = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # Make sure the parent directory of a file database exists
        path = db_url.removeprefix("sqlite:///")
        if db_url.startswith("sqlite:///") and path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        db_url,
        connect_args=connect_args,
        echo=False,
    )


def get_session_factory(engine: Any | None = None) -> sessionmaker[Session]:
    """Create and return a session factory.

    Args:
        engine: SQLAlchemy engine. If not provided, creates one from settings.

    Returns:
        Session factory (sessionmaker).
    """
    if engine is None:
        engine = get_engine()
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_all_tables(engine: Any | None = None) -> None:
    """Create all tables defined by ORM models.

    Args:
        engine: SQLAlchemy engine. If not provided, creates one from settings.
    """
    # Register models with the mapper before creating tables
    from actor_deploy.infra import models as infra_models  # noqa: F401

    if engine is None:
        engine = get_engine()
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session_factory",
]
