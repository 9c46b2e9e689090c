"""Applied-state ORM models.

AppliedResource is the last-known state of a provisioned resource; a row
is written as soon as the provider confirms the operation, so a failed run
leaves exactly the resources that were committed. Deployment records one
apply run.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from actor_deploy.db import Base
from actor_deploy.types import DeploymentStatus


class AppliedResource(Base):
    """ORM model for a provisioned resource.

    Attributes:
        resource_id: Identity from the stack document.
        kind: Resource type.
        attributes: Resolved attribute values last sent to the provider.
        outputs: Values returned by the provider (ids, ARNs, URLs).
        depends_on: Direct dependencies at the time of the last apply.
        sequence: Monotonic creation order across all runs.
        created_at: When the resource was created.
        updated_at: When the resource was last created or updated.
    """

    __tablename__ = "applied_resources"

    resource_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    kind: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    attributes: Mapped[dict[str, object]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    outputs: Mapped[dict[str, object]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    depends_on: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AppliedResource(resource_id={self.resource_id!r}, "
            f"kind={self.kind!r}, sequence={self.sequence})>"
        )


class Deployment(Base):
    """ORM model for an apply run.

    Attributes:
        id: Primary key.
        stack: Stack name.
        action: deploy or destroy.
        status: running, succeeded or failed.
        started_at: Run start.
        finished_at: Run end.
        planned: Number of planned changes.
        applied: Number of changes committed.
        error_code: Error code if the run failed.
        error_message: Error message if the run failed.
    """

    __tablename__ = "deployments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stack: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DeploymentStatus.RUNNING.value
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    planned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Deployment(id={self.id}, action={self.action!r}, "
            f"status={self.status!r})>"
        )

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "stack": self.stack,
            "action": self.action,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "planned": self.planned,
            "applied": self.applied,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


__all__ = ["AppliedResource", "Deployment"]
