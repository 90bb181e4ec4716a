"""Tests for the Vercel provider client."""

import json

import httpx
import pytest

from shipyard.errors import ProviderError
from shipyard.models.project import GitSource, UploadedFile, UploadSource
from shipyard.providers.vercel import VercelProvider, build_git_source


def _provider(handler, **kwargs) -> VercelProvider:
    return VercelProvider(
        token="test-token",
        api_url="https://vercel.test",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestBuildGitSource:
    def test_github(self):
        source = GitSource(repository_url="https://github.com/acme/demo-site.git", branch="main")
        assert build_git_source(source) == {"type": "github", "org": "acme", "repo": "demo-site", "ref": "main"}

    def test_gitlab_keeps_nested_groups(self):
        source = GitSource(repository_url="https://gitlab.com/acme/web/site", branch="dev")
        assert build_git_source(source) == {"type": "gitlab", "projectId": "acme/web/site", "ref": "dev"}

    def test_bitbucket(self):
        source = GitSource(repository_url="https://bitbucket.org/acme/site/", branch="main")
        assert build_git_source(source) == {"type": "bitbucket", "owner": "acme", "slug": "site", "ref": "main"}

    def test_unsupported_host(self):
        with pytest.raises(ProviderError):
            build_git_source(GitSource(repository_url="https://git.example.com/acme/site"))

    def test_url_without_repository(self):
        with pytest.raises(ProviderError):
            build_git_source(GitSource(repository_url="https://github.com/acme"))


class TestDeploy:
    @pytest.mark.asyncio
    async def test_success_returns_https_url(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "dpl_1", "url": "demo-site-abc.example"})

        result = await _provider(handler).deploy(
            "demo-site", GitSource(repository_url="https://github.com/acme/demo-site")
        )

        assert result.public_url == "https://demo-site-abc.example"
        assert json.loads(result.raw_response)["id"] == "dpl_1"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v13/deployments"
        assert request.headers["Authorization"] == "Bearer test-token"
        body = json.loads(request.content)
        assert body["name"] == "demo-site"
        assert body["gitSource"]["repo"] == "demo-site"

    @pytest.mark.asyncio
    async def test_team_id_is_sent_as_query_parameter(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"url": "x.vercel.app"})

        await _provider(handler, team_id="team_42").deploy(
            "x", GitSource(repository_url="https://github.com/acme/x")
        )

        assert seen[0].url.params["teamId"] == "team_42"

    @pytest.mark.asyncio
    async def test_upload_sends_inline_files(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"url": "static.vercel.app"})

        source = UploadSource(files=[UploadedFile.from_bytes("index.html", b"<h1>hi</h1>")])
        await _provider(handler).deploy("static", source)

        body = json.loads(seen[0].content)
        assert body["files"] == [{"file": "index.html", "data": source.files[0].data, "encoding": "base64"}]
        assert body["projectSettings"] == {"framework": None}
        assert "gitSource" not in body

    @pytest.mark.asyncio
    async def test_error_status_raises_with_response_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"code": "bad_request", "message": "Invalid name"}})

        with pytest.raises(ProviderError) as exc_info:
            await _provider(handler).deploy("demo", GitSource(repository_url="https://github.com/acme/demo"))

        assert "400" in exc_info.value.message
        assert "Invalid name" in exc_info.value.build_logs

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError) as exc_info:
            await _provider(handler).deploy("demo", GitSource(repository_url="https://github.com/acme/demo"))

        assert exc_info.value.raw_response is None
        assert "connection refused" in exc_info.value.build_logs

    @pytest.mark.asyncio
    async def test_non_json_error_body_is_kept(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(ProviderError) as exc_info:
            await _provider(handler).deploy("demo", GitSource(repository_url="https://github.com/acme/demo"))

        assert exc_info.value.build_logs == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_success_without_url_is_a_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "dpl_1"})

        with pytest.raises(ProviderError):
            await _provider(handler).deploy("demo", GitSource(repository_url="https://github.com/acme/demo"))

    @pytest.mark.asyncio
    async def test_missing_token_fails_without_request(self, monkeypatch):
        from shipyard.config import get_settings

        monkeypatch.setattr(get_settings(), "vercel_token", "")
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"url": "x"})

        provider = VercelProvider(api_url="https://vercel.test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderError):
            await provider.deploy("demo", GitSource(repository_url="https://github.com/acme/demo"))
        assert calls == []
