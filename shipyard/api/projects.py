"""Project and deployment API used by the dashboard."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, File, Form, Response, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shipyard.deps import CurrentPrincipal, OrchestratorDep
from shipyard.models.deployment import Deployment
from shipyard.models.project import GitSource, Project, SourceOverrides, UploadedFile, UploadSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["projects"])


class ProjectCreate(BaseModel):
    name: str = ""
    repository_url: str = ""
    branch: str = "main"


class DomainUpdate(BaseModel):
    domain: Optional[str] = None


def project_to_dict(project: Project) -> dict[str, Any]:
    """Serialize a project without the uploaded file contents."""
    source = project.source
    if isinstance(source, GitSource):
        source_out: dict[str, Any] = source.model_dump()
    else:
        source_out = {
            "kind": source.kind,
            "files": [{"path": f.path, "size": f.size} for f in source.files],
        }
    return jsonable_encoder({
        "id": str(project.id),
        "owner_id": project.owner_id,
        "name": project.name,
        "slug": project.slug,
        "source": source_out,
        "domain": project.domain,
        "deployment_url": project.deployment_url,
        "status": project.status.value,
        "current_deployment_id": project.current_deployment_id,
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    })


def deployment_to_dict(deployment: Deployment) -> dict[str, Any]:
    return jsonable_encoder({
        "id": str(deployment.id),
        "project_id": deployment.project_id,
        "status": deployment.status.value,
        "trigger": deployment.trigger.value,
        "retry_of": deployment.retry_of,
        "source_ref": deployment.source_ref,
        "url": deployment.url,
        "build_logs": deployment.build_logs,
        "created_at": deployment.created_at,
        "deployed_at": deployment.deployed_at,
        "completed_at": deployment.completed_at,
    })


def _accepted(project: Optional[Project], deployment: Deployment) -> JSONResponse:
    content: dict[str, Any] = {"status": "accepted", "deployment": deployment_to_dict(deployment)}
    if project is not None:
        content["project"] = project_to_dict(project)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=content)


@router.post("/projects")
async def create_project(body: ProjectCreate, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    """Create a project from a git repository and start deploying it."""
    source = GitSource(repository_url=body.repository_url, branch=body.branch)
    project, deployment = await orchestrator.create_project(principal, body.name, source)
    return _accepted(project, deployment)


@router.post("/projects/upload")
async def create_project_from_files(
    principal: CurrentPrincipal,
    orchestrator: OrchestratorDep,
    name: str = Form(""),
    files: list[UploadFile] = File(...),
):
    """Create a project from uploaded files and start deploying it."""
    uploaded = [
        UploadedFile.from_bytes(f.filename or "index.html", await f.read())
        for f in files
    ]
    logger.info(f"Received {len(uploaded)} file(s) for new project {name!r}")
    project, deployment = await orchestrator.create_project(principal, name, UploadSource(files=uploaded))
    return _accepted(project, deployment)


@router.get("/projects")
async def list_projects(principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    projects = await orchestrator.list_projects(principal)
    return {"projects": [project_to_dict(p) for p in projects]}


@router.get("/projects/{project_id}")
async def get_project(project_id: str, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    project = await orchestrator.get_project(project_id, owner_id=principal)
    return project_to_dict(project)


@router.patch("/projects/{project_id}/domain")
async def update_domain(
    project_id: str,
    body: DomainUpdate,
    principal: CurrentPrincipal,
    orchestrator: OrchestratorDep,
):
    project = await orchestrator.update_domain(project_id, body.domain, owner_id=principal)
    return project_to_dict(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(project_id: str, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    """Delete a project and its deployment history. Provider resources are kept."""
    await orchestrator.delete_project(project_id, owner_id=principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/projects/{project_id}/deployments")
async def redeploy_project(
    project_id: str,
    principal: CurrentPrincipal,
    orchestrator: OrchestratorDep,
    body: Optional[SourceOverrides] = None,
):
    """Start a new deployment, optionally overriding source fields."""
    deployment = await orchestrator.start_deployment(project_id, overrides=body, owner_id=principal)
    return _accepted(None, deployment)


@router.get("/projects/{project_id}/deployments")
async def list_deployments(project_id: str, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    deployments = await orchestrator.list_deployments(project_id, owner_id=principal)
    return {"deployments": [deployment_to_dict(d) for d in deployments]}


@router.get("/deployments/{deployment_id}")
async def get_deployment(deployment_id: str, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    deployment = await orchestrator.get_deployment(deployment_id, owner_id=principal)
    return deployment_to_dict(deployment)


@router.post("/deployments/{deployment_id}/retry")
async def retry_deployment(deployment_id: str, principal: CurrentPrincipal, orchestrator: OrchestratorDep):
    """Retry a failed deployment as a new attempt."""
    deployment = await orchestrator.retry_deployment(deployment_id, owner_id=principal)
    return _accepted(None, deployment)
