"""Vercel deployment provider.

Vercel REST API:
POST https://api.vercel.com/v13/deployments
Authorization: Bearer <token>
"""

import json
import logging
from typing import Any, Optional, Union
from urllib.parse import urlparse

import httpx

from shipyard.config import get_settings
from shipyard.errors import ProviderError
from shipyard.models.project import GitSource, UploadSource
from shipyard.providers.base import BaseProvider, ProviderResult

logger = logging.getLogger(__name__)


def build_git_source(source: GitSource) -> dict[str, Any]:
    """Translate a repository URL into Vercel's gitSource object."""
    parsed = urlparse(source.repository_url.strip())
    host = (parsed.hostname or "").lower()
    path = parsed.path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]

    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        raise ProviderError(f"Cannot determine repository from URL: {source.repository_url}")

    if host in ("github.com", "www.github.com"):
        return {"type": "github", "org": parts[0], "repo": parts[1], "ref": source.branch}
    if host in ("gitlab.com", "www.gitlab.com"):
        return {"type": "gitlab", "projectId": "/".join(parts), "ref": source.branch}
    if host in ("bitbucket.org", "www.bitbucket.org"):
        return {"type": "bitbucket", "owner": parts[0], "slug": parts[1], "ref": source.branch}

    raise ProviderError(f"Unsupported repository host: {host or source.repository_url}")


class VercelProvider(BaseProvider):
    """Deploy projects through the Vercel deployments API."""

    def __init__(
        self,
        token: str = "",
        team_id: str = "",
        api_url: str = "",
        timeout: Optional[float] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._token = token or settings.vercel_token
        self._team_id = team_id or settings.vercel_team_id
        self._api_url = (api_url or settings.vercel_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.provider_timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "vercel"

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    def build_payload(self, slug: str, source: Union[GitSource, UploadSource]) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": slug}
        if isinstance(source, GitSource):
            payload["gitSource"] = build_git_source(source)
        else:
            payload["files"] = [
                {"file": f.path, "data": f.data, "encoding": "base64"}
                for f in source.files
            ]
            # Required by Vercel for deployments without a linked project
            payload["projectSettings"] = {"framework": None}
        return payload

    async def deploy(self, slug: str, source: Union[GitSource, UploadSource]) -> ProviderResult:
        if not self.enabled:
            raise ProviderError("Vercel token is not configured")

        payload = self.build_payload(slug, source)
        params = {"teamId": self._team_id} if self._team_id else None
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

        logger.info(f"Deploying {slug} to Vercel ({source.describe()})")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._api_url}/v13/deployments",
                    headers=headers,
                    params=params,
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Vercel request for {slug} failed: {e!r}")
            raise ProviderError(f"Vercel request failed: {e!r}") from e

        try:
            data = response.json()
            raw = json.dumps(data, ensure_ascii=False)
        except ValueError:
            data = None
            raw = response.text

        logger.debug(f"Vercel response ({response.status_code}): {raw}")

        if not response.is_success:
            raise ProviderError(
                f"Vercel deployment failed with status {response.status_code}",
                raw_response=raw,
            )

        if not isinstance(data, dict) or not data.get("url"):
            raise ProviderError("Vercel response did not include a deployment URL", raw_response=raw)

        return ProviderResult(public_url=f"https://{data['url']}", raw_response=raw)
