"""Deployment model - one attempt to deploy a project."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from beanie import Document, Indexed
from pydantic import Field


class DeploymentStatus(str, Enum):
    PENDING = "pending"  # Submitted, awaiting provider response
    SUCCESS = "success"
    FAILED = "failed"


class DeploymentTrigger(str, Enum):
    CREATE = "create"
    REDEPLOY = "redeploy"
    RETRY = "retry"


class Deployment(Document):
    """Append-only history entry for a deployment attempt.

    Created once in ``pending`` and moved exactly once to ``success`` or
    ``failed``. Retries create a new row instead of touching a failed one.
    """

    project_id: Annotated[str, Indexed(str)]  # Reference to Project._id as string
    status: DeploymentStatus = DeploymentStatus.PENDING
    trigger: DeploymentTrigger = DeploymentTrigger.CREATE
    retry_of: Optional[str] = None  # Deployment._id of the failed attempt being retried
    source_ref: str = ""
    url: Optional[str] = None  # Public URL returned by the provider on success
    build_logs: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    deployed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Settings:
        name = "deployments"
        use_state_management = True
        indexes = [
            "status",
            [("project_id", 1), ("created_at", -1)],
        ]

    def is_pending(self) -> bool:
        return self.status == DeploymentStatus.PENDING

    def is_failed(self) -> bool:
        return self.status == DeploymentStatus.FAILED
