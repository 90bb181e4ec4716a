"""Notification service - sends deployment outcomes through configured channels."""

import logging
from typing import Optional

from shipyard.channels.base import BaseChannel
from shipyard.channels.slack import SlackWebhookChannel
from shipyard.channels.telegram import TelegramChannel
from shipyard.config import Settings, get_settings
from shipyard.models.event import DeploymentEvent, Outcome

logger = logging.getLogger(__name__)


class NotificationService:
    """Best-effort fan-out of deployment events to every enabled channel."""

    def __init__(self, channels: list[BaseChannel]):
        self._channels = [c for c in channels if c.enabled]

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "NotificationService":
        """Build the service from the channels configured in settings."""
        settings = settings or get_settings()
        channels: list[BaseChannel] = [
            TelegramChannel(
                bot_token=settings.telegram_bot_token,
                chat_id=settings.telegram_chat_id,
                api_url=settings.telegram_api_url,
            ),
            SlackWebhookChannel(webhook_url=settings.slack_webhook_url),
        ]
        service = cls(channels)
        if not service.channels:
            logger.warning("No notification channels configured, deployment outcomes will only be logged")
        return service

    @property
    def channels(self) -> list[BaseChannel]:
        return list(self._channels)

    async def send(self, event: DeploymentEvent) -> dict[str, bool]:
        """Send the event to all channels.

        Returns a dict of channel_name -> success status. Never raises.
        """
        results: dict[str, bool] = {}
        for channel in self._channels:
            success = await channel.send_safe(event)
            results[channel.name] = success

            if not success:
                logger.error(f"Failed to notify {channel.name} about project {event.project_name}")

        return results

    async def notify(
        self,
        project_name: str,
        outcome: Outcome,
        deployment_url: Optional[str] = None,
        error: Optional[str] = None,
        project_id: Optional[str] = None,
        deployment_id: Optional[str] = None,
    ) -> dict[str, bool]:
        """Notify about a finished deployment attempt."""
        event = DeploymentEvent(
            project_name=project_name,
            outcome=outcome,
            deployment_url=deployment_url,
            error=error,
            project_id=project_id,
            deployment_id=deployment_id,
        )
        logger.info(f"Sending {outcome.value} notification for project {project_name} to {len(self._channels)} channel(s)")
        return await self.send(event)
