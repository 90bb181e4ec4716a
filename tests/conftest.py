"""Shared fixtures: in-memory MongoDB, scripted provider and recording channel."""

import asyncio
from typing import Optional, Union

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from shipyard.channels.base import BaseChannel
from shipyard.errors import ProviderError
from shipyard.models.deployment import Deployment
from shipyard.models.event import DeploymentEvent
from shipyard.models.project import GitSource, Project, UploadSource
from shipyard.providers.base import BaseProvider, ProviderResult
from shipyard.services.notification import NotificationService
from shipyard.services.orchestrator import Orchestrator
from shipyard.services.store import DeploymentStore


class ScriptedProvider(BaseProvider):
    """Provider returning queued outcomes; succeeds with a slug-based URL by default.

    When ``gate`` is set, every call waits for it before answering.
    """

    def __init__(self):
        self.outcomes: list[Union[ProviderResult, Exception]] = []
        self.calls: list[tuple[str, Union[GitSource, UploadSource]]] = []
        self.gate: Optional[asyncio.Event] = None

    @property
    def name(self) -> str:
        return "scripted"

    def succeed(self, url: str) -> None:
        self.outcomes.append(ProviderResult(public_url=f"https://{url}", raw_response=f'{{"url": "{url}"}}'))

    def fail(self, error: Exception) -> None:
        self.outcomes.append(error)

    async def deploy(self, slug: str, source: Union[GitSource, UploadSource]) -> ProviderResult:
        self.calls.append((slug, source))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else ProviderResult(
            public_url=f"https://{slug}.vercel.app",
            raw_response=f'{{"url": "{slug}.vercel.app"}}',
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingChannel(BaseChannel):
    """Channel that records events, or raises when ``broken`` is set."""

    def __init__(self, broken: bool = False, name: str = "recording"):
        self.events: list[DeploymentEvent] = []
        self.broken = broken
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def send(self, event: DeploymentEvent) -> bool:
        if self.broken:
            raise ConnectionError("notification channel is down")
        self.events.append(event)
        return True


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client.get_database(name="shipyard_test")
    await init_beanie(database=database, document_models=[Project, Deployment])
    yield database


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def store(db) -> DeploymentStore:
    return DeploymentStore()


@pytest.fixture
async def orchestrator(store: DeploymentStore, provider: ScriptedProvider, channel: RecordingChannel):
    orchestrator = Orchestrator(store=store, provider=provider, notifier=NotificationService([channel]))
    yield orchestrator
    if provider.gate is not None:
        provider.gate.set()
    await orchestrator.drain()


@pytest.fixture
def git_source() -> GitSource:
    return GitSource(repository_url="https://github.com/acme/demo-site", branch="main")
