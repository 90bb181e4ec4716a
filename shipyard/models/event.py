"""Deployment outcome event delivered to notification channels."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class DeploymentEvent(BaseModel):
    """Human-facing summary of a finished attempt."""

    project_name: str
    outcome: Outcome
    deployment_url: Optional[str] = None
    error: Optional[str] = None
    project_id: Optional[str] = None
    deployment_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCESS
