"""Tests for the project and deployment HTTP API."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from shipyard.errors import ProviderError
from shipyard.main import app
from shipyard.services.orchestrator import Orchestrator

from tests.conftest import ScriptedProvider

HEADERS = {"X-Principal-Id": "user-1"}


@pytest.fixture
async def client(orchestrator: Orchestrator):
    app.state.orchestrator = orchestrator
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.orchestrator = None


async def _create(client: AsyncClient, name: str = "demo-site") -> dict:
    response = await client.post(
        "/api/projects",
        json={"name": name, "repository_url": "https://github.com/acme/demo-site", "branch": "main"},
        headers=HEADERS,
    )
    assert response.status_code == 202
    return response.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_requests_without_principal_are_rejected(client: AsyncClient):
    response = await client.get("/api/projects")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_and_observe_deployment(
    client: AsyncClient, orchestrator: Orchestrator, provider: ScriptedProvider
):
    provider.succeed("demo-site-abc.example")

    created = await _create(client)
    assert created["status"] == "accepted"
    assert created["project"]["status"] == "building"
    assert created["project"]["slug"] == "demo-site"
    assert created["deployment"]["status"] == "pending"

    await orchestrator.drain()

    project_id = created["project"]["id"]
    project = (await client.get(f"/api/projects/{project_id}", headers=HEADERS)).json()
    assert project["status"] == "deployed"
    assert project["deployment_url"] == "https://demo-site-abc.example"

    deployments = (await client.get(f"/api/projects/{project_id}/deployments", headers=HEADERS)).json()
    assert [d["status"] for d in deployments["deployments"]] == ["success"]
    assert deployments["deployments"][0]["deployed_at"] is not None

    listed = (await client.get("/api/projects", headers=HEADERS)).json()
    assert [p["id"] for p in listed["projects"]] == [project_id]


@pytest.mark.asyncio
async def test_missing_name_is_a_validation_error(client: AsyncClient):
    response = await client.post(
        "/api/projects",
        json={"name": "", "repository_url": "https://github.com/acme/demo-site"},
        headers=HEADERS,
    )

    assert response.status_code == 422
    assert response.json()["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_upload_project(client: AsyncClient, orchestrator: Orchestrator, provider: ScriptedProvider):
    response = await client.post(
        "/api/projects/upload",
        data={"name": "Static Site"},
        files=[
            ("files", ("index.html", b"<h1>hi</h1>", "text/html")),
            ("files", ("style.css", b"h1 {}", "text/css")),
        ],
        headers=HEADERS,
    )
    await orchestrator.drain()

    assert response.status_code == 202
    body = response.json()
    assert body["project"]["slug"] == "static-site"
    assert body["project"]["source"] == {
        "kind": "upload",
        "files": [{"path": "index.html", "size": 11}, {"path": "style.css", "size": 5}],
    }
    assert provider.calls[0][1].files[0].path == "index.html"


@pytest.mark.asyncio
async def test_redeploy_conflict_while_building(
    client: AsyncClient, orchestrator: Orchestrator, provider: ScriptedProvider
):
    created = await _create(client)
    await orchestrator.drain()
    project_id = created["project"]["id"]

    provider.gate = asyncio.Event()
    first = await client.post(f"/api/projects/{project_id}/deployments", headers=HEADERS)
    second = await client.post(f"/api/projects/{project_id}/deployments", headers=HEADERS)

    assert first.status_code == 202
    assert first.json()["deployment"]["trigger"] == "redeploy"
    assert second.status_code == 409
    assert second.json()["kind"] == "conflict"


@pytest.mark.asyncio
async def test_redeploy_with_branch_override(
    client: AsyncClient, orchestrator: Orchestrator, provider: ScriptedProvider
):
    created = await _create(client)
    await orchestrator.drain()
    project_id = created["project"]["id"]

    response = await client.post(
        f"/api/projects/{project_id}/deployments", json={"branch": "dev"}, headers=HEADERS
    )
    await orchestrator.drain()

    assert response.status_code == 202
    assert provider.calls[-1][1].branch == "dev"


@pytest.mark.asyncio
async def test_retry_flow(client: AsyncClient, orchestrator: Orchestrator, provider: ScriptedProvider):
    provider.fail(ProviderError("Vercel request failed: ConnectError"))
    created = await _create(client)
    await orchestrator.drain()
    failed_id = created["deployment"]["id"]

    failed = (await client.get(f"/api/deployments/{failed_id}", headers=HEADERS)).json()
    assert failed["status"] == "failed"
    assert failed["deployed_at"] is None

    retry = await client.post(f"/api/deployments/{failed_id}/retry", headers=HEADERS)
    await orchestrator.drain()
    assert retry.status_code == 202
    assert retry.json()["deployment"]["retry_of"] == failed_id

    again = await client.post(f"/api/deployments/{retry.json()['deployment']['id']}/retry", headers=HEADERS)
    assert again.status_code == 422


@pytest.mark.asyncio
async def test_update_domain(client: AsyncClient):
    created = await _create(client)
    project_id = created["project"]["id"]

    response = await client.patch(
        f"/api/projects/{project_id}/domain", json={"domain": "Demo.Example.com"}, headers=HEADERS
    )

    assert response.status_code == 200
    assert response.json()["domain"] == "demo.example.com"


@pytest.mark.asyncio
async def test_delete_project(client: AsyncClient, orchestrator: Orchestrator):
    created = await _create(client)
    await orchestrator.drain()
    project_id = created["project"]["id"]
    deployment_id = created["deployment"]["id"]

    response = await client.delete(f"/api/projects/{project_id}", headers=HEADERS)
    assert response.status_code == 204

    assert (await client.get(f"/api/projects/{project_id}", headers=HEADERS)).status_code == 404
    assert (await client.get(f"/api/deployments/{deployment_id}", headers=HEADERS)).status_code == 404


@pytest.mark.asyncio
async def test_other_principals_cannot_see_project(client: AsyncClient, orchestrator: Orchestrator):
    created = await _create(client)
    await orchestrator.drain()
    project_id = created["project"]["id"]
    other = {"X-Principal-Id": "user-2"}

    assert (await client.get(f"/api/projects/{project_id}", headers=other)).status_code == 404
    assert (await client.post(f"/api/projects/{project_id}/deployments", headers=other)).status_code == 404
    assert (await client.delete(f"/api/projects/{project_id}", headers=other)).status_code == 404
    assert (await client.get("/api/projects", headers=other)).json() == {"projects": []}
