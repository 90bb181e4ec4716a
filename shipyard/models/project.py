"""Project model - a user-declared deployable site."""

import base64
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from shipyard.errors import ValidationError

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def slugify(name: str) -> str:
    """Derive a provider-safe slug: lowercase, anything outside [a-z0-9-] becomes '-'."""
    return _SLUG_INVALID.sub("-", name.lower())


class ProjectStatus(str, Enum):
    PENDING = "pending"  # No attempt has finished yet
    BUILDING = "building"  # An attempt is in flight
    DEPLOYED = "deployed"
    FAILED = "failed"


class GitSource(BaseModel):
    """Source fetched by the provider from a git repository."""

    kind: Literal["git"] = "git"
    repository_url: str
    branch: str = "main"

    def describe(self) -> str:
        return f"git:{self.repository_url}@{self.branch}"


class UploadedFile(BaseModel):
    """A single file of an uploaded bundle, stored base64-encoded."""

    path: str
    data: str
    size: int = 0

    @classmethod
    def from_bytes(cls, path: str, content: bytes) -> "UploadedFile":
        return cls(
            path=path.lstrip("/"),
            data=base64.b64encode(content).decode("ascii"),
            size=len(content),
        )


class UploadSource(BaseModel):
    """Source uploaded directly as a set of files."""

    kind: Literal["upload"] = "upload"
    files: list[UploadedFile] = Field(default_factory=list)

    def describe(self) -> str:
        return f"upload:{len(self.files)} files"


ProjectSource = Annotated[Union[GitSource, UploadSource], Field(discriminator="kind")]


class SourceOverrides(BaseModel):
    """Source fields to replace for a single redeploy; they persist on the project."""

    repository_url: Optional[str] = None
    branch: Optional[str] = None
    files: Optional[list[UploadedFile]] = None

    def is_empty(self) -> bool:
        return self.repository_url is None and self.branch is None and self.files is None


def validate_source(source: Optional[Union[GitSource, UploadSource]]) -> None:
    """Raise ValidationError unless exactly one usable source is present."""
    if source is None:
        raise ValidationError("Project source is required")
    if isinstance(source, GitSource):
        if not source.repository_url.strip():
            raise ValidationError("Repository URL is required for git sources")
        if not source.branch.strip():
            raise ValidationError("Branch must not be empty")
    elif not source.files:
        raise ValidationError("At least one file is required for upload sources")


def merge_source(
    source: Union[GitSource, UploadSource],
    overrides: Optional[SourceOverrides],
) -> Union[GitSource, UploadSource]:
    """Apply redeploy overrides to a project's source.

    New files turn the project into an upload project; a repository URL turns
    it into a git project. A branch alone only makes sense for git sources.
    """
    if overrides is None or overrides.is_empty():
        return source

    if overrides.files is not None:
        if overrides.repository_url is not None or overrides.branch is not None:
            raise ValidationError("Provide either files or git fields, not both")
        merged: Union[GitSource, UploadSource] = UploadSource(files=overrides.files)
    elif isinstance(source, GitSource):
        merged = source.model_copy(
            update={
                k: v
                for k, v in {
                    "repository_url": overrides.repository_url,
                    "branch": overrides.branch,
                }.items()
                if v is not None
            }
        )
    elif overrides.repository_url is not None:
        merged = GitSource(
            repository_url=overrides.repository_url,
            branch=overrides.branch or "main",
        )
    else:
        raise ValidationError("Branch override requires a git source")

    validate_source(merged)
    return merged


class Project(Document):
    """Deployable site owned by a principal.

    ``status`` mirrors the outcome of the most recently started attempt,
    identified by ``current_deployment_id``.
    """

    owner_id: Annotated[str, Indexed(str)]
    name: str
    slug: str
    source: ProjectSource
    domain: Optional[str] = None
    deployment_url: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PENDING
    current_deployment_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "projects"
        use_state_management = True
        indexes = [
            [("owner_id", 1), ("created_at", -1)],
        ]

    def is_building(self) -> bool:
        return self.status == ProjectStatus.BUILDING
