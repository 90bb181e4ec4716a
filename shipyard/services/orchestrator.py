"""Deployment orchestrator - owns the project and deployment state machines.

Every attempt follows the same path:

1. The project is atomically claimed (``status != building`` -> ``building``)
   and a ``pending`` Deployment is written. The caller gets the Deployment
   back at this point.
2. The provider is called in a background task. No lock is held and the
   records are not touched while waiting.
3. The Deployment is moved to ``success``/``failed`` (once, guarded by
   ``status == pending``) and the project is updated if the attempt is still
   its current one.
4. A notification task is spawned. Its outcome never affects stored state.

Provider failures of any kind fail the attempt. There is no automatic retry;
failed attempts are retried by the user through ``retry_deployment``.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Coroutine, Optional, Union

from beanie import PydanticObjectId

from shipyard.errors import ConflictError, NotFoundError, ProviderError, StoreError, ValidationError
from shipyard.models.deployment import Deployment, DeploymentStatus, DeploymentTrigger
from shipyard.models.event import Outcome
from shipyard.models.project import (
    GitSource,
    Project,
    ProjectStatus,
    SourceOverrides,
    UploadSource,
    merge_source,
    slugify,
    validate_source,
)
from shipyard.providers.base import BaseProvider
from shipyard.services.notification import NotificationService
from shipyard.services.store import DeploymentStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """Starts deployment attempts and records their outcome."""

    def __init__(
        self,
        store: DeploymentStore,
        provider: BaseProvider,
        notifier: NotificationService,
    ):
        self._store = store
        self._provider = provider
        self._notifier = notifier
        self._tasks: set[asyncio.Task] = set()
        self._in_flight: set[str] = set()  # Deployment ids awaiting the provider

    # Queries

    async def get_project(self, project_id: str, owner_id: Optional[str] = None) -> Project:
        project = await self._store.get_project(project_id)
        if project is None or (owner_id is not None and project.owner_id != owner_id):
            raise NotFoundError(f"Project not found: {project_id}")
        return project

    async def list_projects(self, owner_id: str) -> list[Project]:
        return await self._store.list_projects(owner_id)

    async def get_deployment(self, deployment_id: str, owner_id: Optional[str] = None) -> Deployment:
        deployment = await self._store.get_deployment(deployment_id)
        if deployment is None:
            raise NotFoundError(f"Deployment not found: {deployment_id}")
        if owner_id is not None:
            # Hide deployments of projects owned by someone else
            project = await self._store.get_project(deployment.project_id)
            if project is None or project.owner_id != owner_id:
                raise NotFoundError(f"Deployment not found: {deployment_id}")
        return deployment

    async def list_deployments(self, project_id: str, owner_id: Optional[str] = None) -> list[Deployment]:
        project = await self.get_project(project_id, owner_id)
        return await self._store.list_deployments(str(project.id))

    # Commands

    async def create_project(
        self,
        owner_id: str,
        name: str,
        source: Optional[Union[GitSource, UploadSource]],
    ) -> tuple[Project, Deployment]:
        """Create a project and start its first deployment attempt."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        validate_source(source)
        assert source is not None

        project = Project(
            owner_id=owner_id,
            name=name,
            slug=slugify(name),
            source=source,
        )
        await self._store.insert_project(project)
        logger.info(f"Created project {project.id} ({project.slug}) for {owner_id}")

        deployment = await self._begin_attempt(project, DeploymentTrigger.CREATE)
        project.status = ProjectStatus.BUILDING
        project.current_deployment_id = str(deployment.id)
        return project, deployment

    async def start_deployment(
        self,
        project_id: str,
        overrides: Optional[SourceOverrides] = None,
        owner_id: Optional[str] = None,
    ) -> Deployment:
        """Start a new attempt for an existing project (manual redeploy)."""
        project = await self.get_project(project_id, owner_id)
        if project.is_building():
            raise ConflictError(f"Project {project_id} already has a deployment in progress")

        source = None
        if overrides is not None and not overrides.is_empty():
            source = merge_source(project.source, overrides)

        return await self._begin_attempt(project, DeploymentTrigger.REDEPLOY, source=source)

    async def retry_deployment(self, deployment_id: str, owner_id: Optional[str] = None) -> Deployment:
        """Start a new attempt from a failed one, using the project's current source."""
        failed = await self.get_deployment(deployment_id, owner_id)
        if not failed.is_failed():
            raise ValidationError(
                f"Only failed deployments can be retried (deployment {deployment_id} is {failed.status.value})"
            )

        project = await self.get_project(failed.project_id, owner_id)
        if project.is_building():
            raise ConflictError(f"Project {project.id} already has a deployment in progress")

        return await self._begin_attempt(project, DeploymentTrigger.RETRY, retry_of=str(failed.id))

    async def update_domain(
        self,
        project_id: str,
        domain: Optional[str],
        owner_id: Optional[str] = None,
    ) -> Project:
        """Set or clear the custom domain. Independent of deployment state."""
        await self.get_project(project_id, owner_id)
        normalized = (domain or "").strip().lower() or None
        project = await self._store.update_project(project_id, {"domain": normalized})
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        logger.info(f"Project {project_id} domain set to {normalized}")
        return project

    async def delete_project(self, project_id: str, owner_id: Optional[str] = None) -> None:
        """Delete a project and all of its deployments.

        Resources already created on the provider are left in place.
        """
        project = await self.get_project(project_id, owner_id)
        removed = await self._store.delete_project(project)
        logger.info(
            f"Deleted project {project_id} and {removed} deployment(s); "
            f"provider resources for {project.slug} were not torn down"
        )

    async def expire_stale_attempts(self, older_than: timedelta) -> int:
        """Fail attempts abandoned without a provider answer, e.g. after a crash.

        Attempts this process is still waiting on are left alone. Also
        reconciles projects left ``building`` after their attempt finished.
        Returns the number of records repaired.
        """
        cutoff = datetime.utcnow() - older_than
        repaired = 0

        for deployment in await self._store.find_stale_deployments(cutoff):
            deployment_id = str(deployment.id)
            if deployment_id in self._in_flight:
                continue
            project = await self._store.get_project(deployment.project_id)
            minutes = int(older_than.total_seconds() // 60)
            message = f"Attempt abandoned: no provider response within {minutes} minutes"
            logger.warning(f"Expiring stale deployment {deployment_id} of project {deployment.project_id}")
            if await self._finish_attempt(
                project_id=deployment.project_id,
                project_name=project.name if project else deployment.project_id,
                deployment_id=deployment_id,
                outcome=Outcome.FAILED,
                build_logs=message,
                error=message,
            ):
                repaired += 1

        for project in await self._store.find_stuck_projects(cutoff):
            current_id = project.current_deployment_id or ""
            if current_id in self._in_flight:
                continue
            current = await self._store.get_deployment(current_id) if current_id else None
            if current is not None and current.is_pending():
                continue
            if current is not None and current.status == DeploymentStatus.SUCCESS:
                status, url = ProjectStatus.DEPLOYED, current.url
            else:
                status, url = ProjectStatus.FAILED, None
            logger.warning(f"Reconciling project {project.id} stuck in building to {status.value}")
            if await self._store.finish_project(str(project.id), current_id, status, deployment_url=url):
                repaired += 1

        return repaired

    async def drain(self) -> None:
        """Wait for all attempt and notification tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Attempt lifecycle

    async def _begin_attempt(
        self,
        project: Project,
        trigger: DeploymentTrigger,
        source: Optional[Union[GitSource, UploadSource]] = None,
        retry_of: Optional[str] = None,
    ) -> Deployment:
        project_id = str(project.id)
        deployment_id = PydanticObjectId()

        previous = await self._store.claim_project(project_id, str(deployment_id), source=source)
        if previous is None:
            if await self._store.get_project(project_id) is None:
                raise NotFoundError(f"Project not found: {project_id}")
            raise ConflictError(f"Project {project_id} already has a deployment in progress")

        attempt_source = source or previous.source
        deployment = Deployment(
            id=deployment_id,
            project_id=project_id,
            trigger=trigger,
            retry_of=retry_of,
            source_ref=attempt_source.describe(),
        )
        try:
            await self._store.insert_deployment(deployment)
        except StoreError:
            try:
                await self._store.release_project(previous, str(deployment_id))
            except StoreError:
                logger.error(
                    f"Project {project_id} left in building after failed attempt setup; "
                    "the stale attempt check will reconcile it"
                )
            raise

        # A delete between claim and insert has already cascaded past this row
        current = await self._store.get_project(project_id)
        if current is None or current.current_deployment_id != str(deployment_id):
            await self._store.delete_deployment(str(deployment_id))
            if current is None:
                raise NotFoundError(f"Project not found: {project_id}")
            raise ConflictError(f"Project {project_id} already has a deployment in progress")

        logger.info(
            f"Accepted {trigger.value} deployment {deployment_id} for project {project_id} "
            f"({attempt_source.describe()})"
        )
        self._in_flight.add(str(deployment_id))
        self._spawn(
            self._run_attempt(project_id, previous.name, previous.slug, str(deployment_id), attempt_source)
        )
        return deployment

    async def _run_attempt(
        self,
        project_id: str,
        project_name: str,
        slug: str,
        deployment_id: str,
        source: Union[GitSource, UploadSource],
    ) -> None:
        try:
            try:
                result = await self._provider.deploy(slug, source)
            except ProviderError as e:
                logger.warning(f"Deployment {deployment_id} of {slug} failed: {e.message}")
                await self._finish_attempt(
                    project_id, project_name, deployment_id, Outcome.FAILED,
                    build_logs=e.build_logs, error=e.message,
                )
            except Exception as e:
                logger.exception(f"Unexpected provider error for deployment {deployment_id}")
                await self._finish_attempt(
                    project_id, project_name, deployment_id, Outcome.FAILED,
                    build_logs=repr(e), error=str(e) or repr(e),
                )
            else:
                logger.info(f"Deployment {deployment_id} of {slug} is live at {result.public_url}")
                await self._finish_attempt(
                    project_id, project_name, deployment_id, Outcome.SUCCESS,
                    build_logs=result.raw_response, url=result.public_url,
                )
        finally:
            self._in_flight.discard(deployment_id)

    async def _finish_attempt(
        self,
        project_id: str,
        project_name: str,
        deployment_id: str,
        outcome: Outcome,
        build_logs: Optional[str],
        url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Commit an attempt's terminal state, then dispatch its notification.

        Returns False when the attempt was already finished or deleted.
        """
        succeeded = outcome == Outcome.SUCCESS
        try:
            deployment = await self._store.finish_deployment(
                deployment_id,
                DeploymentStatus.SUCCESS if succeeded else DeploymentStatus.FAILED,
                build_logs,
                url=url,
            )
            if deployment is None:
                logger.warning(f"Deployment {deployment_id} already finished or deleted, skipping")
                return False

            project = await self._store.finish_project(
                project_id,
                deployment_id,
                ProjectStatus.DEPLOYED if succeeded else ProjectStatus.FAILED,
                deployment_url=url if succeeded else None,
            )
            if project is None:
                if await self._store.get_project(project_id) is None:
                    logger.warning(f"Project {project_id} was deleted during deployment {deployment_id}")
                    return False
                logger.warning(f"Deployment {deployment_id} is no longer current for project {project_id}")
        except StoreError as e:
            # Nobody is waiting on this task; the stale attempt check repairs it
            logger.error(f"Could not record outcome of deployment {deployment_id}: {e}")
            return False

        logger.info(f"Deployment {deployment_id} finished: {outcome.value}")
        self._spawn(
            self._notify(project_name, outcome, url, error, project_id, deployment_id)
        )
        return True

    async def _notify(
        self,
        project_name: str,
        outcome: Outcome,
        url: Optional[str],
        error: Optional[str],
        project_id: str,
        deployment_id: str,
    ) -> None:
        try:
            await self._notifier.notify(
                project_name,
                outcome,
                deployment_url=url,
                error=error,
                project_id=project_id,
                deployment_id=deployment_id,
            )
        except Exception as e:
            logger.error(f"Failed to send notification for deployment {deployment_id}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
