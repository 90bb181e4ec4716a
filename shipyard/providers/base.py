"""Deployment provider contract."""

from abc import ABC, abstractmethod
from typing import Union

from pydantic import BaseModel

from shipyard.models.project import GitSource, UploadSource


class ProviderResult(BaseModel):
    """Successful provider response."""

    public_url: str
    raw_response: str


class BaseProvider(ABC):
    """Remote build/hosting service.

    A single ``deploy`` call is one attempt: no retry, backoff or idempotency
    key. Implementations raise ``ProviderError`` for rejections and transport
    failures, including their own timeouts.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs."""

    @abstractmethod
    async def deploy(self, slug: str, source: Union[GitSource, UploadSource]) -> ProviderResult:
        """Submit a deployment and wait for the provider's answer."""
