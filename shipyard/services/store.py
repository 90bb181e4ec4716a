"""Persistent store for projects and deployments.

All writes touch a single document and are atomic in MongoDB. The two
transitions that must not race (entering ``building`` and finishing an
attempt) are compare-and-set updates via ``find_one_and_update``.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional, Union

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Set
from bson import ObjectId
from pymongo.errors import PyMongoError

from shipyard.errors import StoreError
from shipyard.models.deployment import Deployment, DeploymentStatus
from shipyard.models.project import GitSource, Project, ProjectStatus, UploadSource

logger = logging.getLogger(__name__)


def to_object_id(value: str) -> Optional[PydanticObjectId]:
    """Parse a record id, returning None for malformed ids."""
    if not ObjectId.is_valid(value):
        return None
    return PydanticObjectId(value)


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Store failure while trying to {action}: {e}")
        raise StoreError(f"Failed to {action}") from e


class DeploymentStore:
    """Beanie-backed store for Project and Deployment documents."""

    # Projects

    async def insert_project(self, project: Project) -> Project:
        with _store_call("create project"):
            await project.insert()
        return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        oid = to_object_id(project_id)
        if oid is None:
            return None
        with _store_call(f"load project {project_id}"):
            return await Project.get(oid)

    async def list_projects(self, owner_id: str) -> list[Project]:
        with _store_call(f"list projects of {owner_id}"):
            return await Project.find(Project.owner_id == owner_id).sort("-created_at", "-_id").to_list()

    async def update_project(self, project_id: str, fields: dict[str, Any]) -> Optional[Project]:
        """Set plain metadata fields; returns the updated project."""
        oid = to_object_id(project_id)
        if oid is None:
            return None
        update = {**fields, "updated_at": datetime.utcnow()}
        with _store_call(f"update project {project_id}"):
            return await Project.find_one(Project.id == oid).update(
                Set(update),
                response_type=UpdateResponse.NEW_DOCUMENT,
            )

    async def claim_project(
        self,
        project_id: str,
        deployment_id: str,
        source: Optional[Union[GitSource, UploadSource]] = None,
    ) -> Optional[Project]:
        """Atomically move a project that is not building into ``building``.

        Returns the project as it was before the claim, or None when the
        project does not exist or already has an attempt in flight.
        """
        oid = to_object_id(project_id)
        if oid is None:
            return None
        update: dict[Any, Any] = {
            Project.status: ProjectStatus.BUILDING,
            Project.current_deployment_id: deployment_id,
            Project.updated_at: datetime.utcnow(),
        }
        if source is not None:
            update[Project.source] = source.model_dump()
        with _store_call(f"claim project {project_id}"):
            return await Project.find_one(
                Project.id == oid,
                Project.status != ProjectStatus.BUILDING,
            ).update(
                Set(update),
                response_type=UpdateResponse.OLD_DOCUMENT,
            )

    async def release_project(self, previous: Project, deployment_id: str) -> None:
        """Undo a claim whose deployment record could not be written."""
        with _store_call(f"release project {previous.id}"):
            await Project.find_one(
                Project.id == previous.id,
                Project.current_deployment_id == deployment_id,
            ).update(
                Set({
                    Project.status: previous.status,
                    Project.current_deployment_id: previous.current_deployment_id,
                    Project.source: previous.source.model_dump(),
                    Project.updated_at: datetime.utcnow(),
                }),
                response_type=UpdateResponse.NEW_DOCUMENT,
            )

    async def finish_project(
        self,
        project_id: str,
        deployment_id: str,
        status: ProjectStatus,
        deployment_url: Optional[str] = None,
    ) -> Optional[Project]:
        """Record an attempt's outcome if it is still the project's current attempt."""
        oid = to_object_id(project_id)
        if oid is None:
            return None
        update: dict[Any, Any] = {
            Project.status: status,
            Project.updated_at: datetime.utcnow(),
        }
        if deployment_url is not None:
            update[Project.deployment_url] = deployment_url
        with _store_call(f"finish project {project_id}"):
            return await Project.find_one(
                Project.id == oid,
                Project.current_deployment_id == deployment_id,
            ).update(
                Set(update),
                response_type=UpdateResponse.NEW_DOCUMENT,
            )

    async def find_stuck_projects(self, updated_before: datetime) -> list[Project]:
        """Projects that have been ``building`` since before the cutoff."""
        with _store_call("find stuck projects"):
            return await Project.find(
                Project.status == ProjectStatus.BUILDING,
                Project.updated_at < updated_before,
            ).to_list()

    async def delete_project(self, project: Project) -> int:
        """Delete a project and its deployment history.

        Deployments go first so a failure leaves a project without history
        rather than orphaned deployments. Returns the deployments removed.
        """
        project_id = str(project.id)
        with _store_call(f"delete project {project_id}"):
            result = await Deployment.find(Deployment.project_id == project_id).delete()
            await project.delete()
        return result.deleted_count if result else 0

    # Deployments

    async def insert_deployment(self, deployment: Deployment) -> Deployment:
        with _store_call(f"create deployment for project {deployment.project_id}"):
            await deployment.insert()
        return deployment

    async def delete_deployment(self, deployment_id: str) -> None:
        oid = to_object_id(deployment_id)
        if oid is None:
            return
        with _store_call(f"delete deployment {deployment_id}"):
            await Deployment.find(Deployment.id == oid).delete()

    async def get_deployment(self, deployment_id: str) -> Optional[Deployment]:
        oid = to_object_id(deployment_id)
        if oid is None:
            return None
        with _store_call(f"load deployment {deployment_id}"):
            return await Deployment.get(oid)

    async def list_deployments(self, project_id: str) -> list[Deployment]:
        with _store_call(f"list deployments of project {project_id}"):
            return await Deployment.find(
                Deployment.project_id == project_id
            ).sort("-created_at", "-_id").to_list()

    async def finish_deployment(
        self,
        deployment_id: str,
        status: DeploymentStatus,
        build_logs: Optional[str],
        url: Optional[str] = None,
    ) -> Optional[Deployment]:
        """Move a pending deployment to its terminal state exactly once.

        Returns None if the deployment is gone or was already finished.
        """
        oid = to_object_id(deployment_id)
        if oid is None:
            return None
        now = datetime.utcnow()
        update: dict[Any, Any] = {
            Deployment.status: status,
            Deployment.build_logs: build_logs,
            Deployment.completed_at: now,
        }
        if status == DeploymentStatus.SUCCESS:
            update[Deployment.deployed_at] = now
            update[Deployment.url] = url
        with _store_call(f"finish deployment {deployment_id}"):
            return await Deployment.find_one(
                Deployment.id == oid,
                Deployment.status == DeploymentStatus.PENDING,
            ).update(
                Set(update),
                response_type=UpdateResponse.NEW_DOCUMENT,
            )

    async def find_stale_deployments(self, created_before: datetime) -> list[Deployment]:
        with _store_call("find stale deployments"):
            return await Deployment.find(
                Deployment.status == DeploymentStatus.PENDING,
                Deployment.created_at < created_before,
            ).to_list()
