"""Data models for Shipyard."""

from shipyard.models.deployment import Deployment, DeploymentStatus, DeploymentTrigger
from shipyard.models.event import DeploymentEvent, Outcome
from shipyard.models.project import (
    GitSource,
    Project,
    ProjectSource,
    ProjectStatus,
    SourceOverrides,
    UploadedFile,
    UploadSource,
    slugify,
)

__all__ = [
    "Project",
    "ProjectStatus",
    "ProjectSource",
    "GitSource",
    "UploadSource",
    "UploadedFile",
    "SourceOverrides",
    "slugify",
    "Deployment",
    "DeploymentStatus",
    "DeploymentTrigger",
    "DeploymentEvent",
    "Outcome",
]
