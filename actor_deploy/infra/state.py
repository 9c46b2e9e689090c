"""Applied-state store and its lock.

The store wraps a SQLAlchemy session. Each mutating call commits, so what
is on disk always matches the operations the provider has confirmed. A
single invocation holds an advisory lock on the state for its duration; a
second invocation fails instead of waiting.
"""

from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from actor_deploy.errors import ConcurrentModificationError
from actor_deploy.infra.models import AppliedResource, Deployment
from actor_deploy.types import DeploymentAction, DeploymentStatus

logger = logging.getLogger(__name__)


@contextmanager
def state_lock(lock_path: Path) -> Iterator[None]:
    """Hold the advisory state lock.

    Args:
        lock_path: Lock file location.

    Yields:
        None while the lock is held.

    Raises:
        ConcurrentModificationError: If another process holds the lock.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o600)
    lock_acquired = False
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            lock_acquired = True
        except BlockingIOError:
            raise ConcurrentModificationError(
                f"State is locked by another invocation ({lock_path})",
            ) from None

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug("State lock acquired: %s", lock_path)
        yield
    finally:
        if lock_acquired:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("State lock released: %s", lock_path)
        os.close(fd)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StateStore:
    """Last-known applied state backed by a database session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self) -> dict[str, AppliedResource]:
        """Return applied resources keyed by id, in creation order."""
        stmt = select(AppliedResource).order_by(AppliedResource.sequence)
        return {r.resource_id: r for r in self.session.execute(stmt).scalars()}

    def get(self, resource_id: str) -> AppliedResource | None:
        """Return one applied resource, if present."""
        return self.session.get(AppliedResource, resource_id)

    def outputs(self) -> dict[str, dict[str, Any]]:
        """Applied outputs keyed by resource id."""
        return {rid: dict(r.outputs) for rid, r in self.load().items()}

    def _next_sequence(self) -> int:
        current = self.session.execute(
            select(func.max(AppliedResource.sequence))
        ).scalar_one_or_none()
        return (current or 0) + 1

    def record_create(
        self,
        resource_id: str,
        kind: str,
        attributes: dict[str, Any],
        outputs: dict[str, Any],
        depends_on: list[str],
    ) -> AppliedResource:
        """Record a created resource and commit."""
        now = _now()
        record = AppliedResource(
            resource_id=resource_id,
            kind=kind,
            attributes=attributes,
            outputs=outputs,
            depends_on=depends_on,
            sequence=self._next_sequence(),
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        self.session.commit()
        return record

    def record_update(
        self,
        resource_id: str,
        attributes: dict[str, Any],
        outputs: dict[str, Any],
        depends_on: list[str],
    ) -> AppliedResource:
        """Record an updated resource and commit."""
        record = self.session.get(AppliedResource, resource_id)
        if record is None:
            raise KeyError(resource_id)
        record.attributes = attributes
        record.outputs = outputs
        record.depends_on = depends_on
        record.updated_at = _now()
        self.session.commit()
        return record

    def record_delete(self, resource_id: str) -> None:
        """Remove a deleted resource and commit."""
        record = self.session.get(AppliedResource, resource_id)
        if record is not None:
            self.session.delete(record)
            self.session.commit()

    def start_deployment(
        self,
        stack: str,
        action: DeploymentAction,
        planned: int,
    ) -> Deployment:
        """Record the start of an apply run."""
        deployment = Deployment(
            stack=stack,
            action=action.value,
            status=DeploymentStatus.RUNNING.value,
            started_at=_now(),
            planned=planned,
        )
        self.session.add(deployment)
        self.session.commit()
        return deployment

    def finish_deployment(
        self,
        deployment: Deployment,
        applied: int,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> Deployment:
        """Record the end of an apply run."""
        deployment.applied = applied
        deployment.finished_at = _now()
        deployment.error_code = error_code
        deployment.error_message = error_message
        deployment.status = (
            DeploymentStatus.FAILED.value
            if error_code
            else DeploymentStatus.SUCCEEDED.value
        )
        self.session.commit()
        return deployment

    def list_deployments(self, limit: int = 20) -> list[Deployment]:
        """Most recent apply runs first."""
        stmt = select(Deployment).order_by(Deployment.id.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars())


__all__ = ["StateStore", "state_lock"]
