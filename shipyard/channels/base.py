"""Base class for notification channels."""

import logging
from abc import ABC, abstractmethod

from shipyard.errors import NotificationError
from shipyard.models.event import DeploymentEvent

logger = logging.getLogger(__name__)


class BaseChannel(ABC):
    """A destination for deployment outcome notifications."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel identifier used in logs and results."""

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def send(self, event: DeploymentEvent) -> bool:
        """Deliver the event. Raises NotificationError when delivery fails."""

    async def send_safe(self, event: DeploymentEvent) -> bool:
        """Deliver the event, logging instead of raising on failure."""
        try:
            return await self.send(event)
        except NotificationError as e:
            logger.error(f"Failed to send notification via {self.name}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error in notification channel {self.name}")
            return False
