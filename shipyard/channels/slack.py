"""Slack notification channel using Incoming Webhooks."""

import logging
from typing import Any

import httpx

from shipyard.channels.base import BaseChannel
from shipyard.errors import NotificationError
from shipyard.models.event import DeploymentEvent

logger = logging.getLogger(__name__)


class SlackWebhookChannel(BaseChannel):
    """Slack notification channel using Incoming Webhooks."""

    def __init__(self, webhook_url: str, transport: httpx.AsyncBaseTransport | None = None):
        self._webhook_url = webhook_url
        self._transport = transport

    @property
    def name(self) -> str:
        return "slack-webhook"

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    def _build_blocks(self, event: DeploymentEvent) -> dict[str, Any]:
        """Build a Block Kit message for a finished deployment attempt."""
        emoji = "✅" if event.succeeded else "❌"
        title = f"{emoji} Deployment {'succeeded' if event.succeeded else 'failed'}: {event.project_name}"

        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": title[:150], "emoji": True},
            }
        ]

        if event.succeeded and event.deployment_url:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*URL:* <{event.deployment_url}>"},
            })
        elif not event.succeeded:
            error = event.error or "Unknown error"
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:*\n```{error[:2000]}```"},  # Slack limit
            })

        context = f"Project: {event.project_id}" if event.project_id else f"Project: {event.project_name}"
        if event.deployment_id:
            context += f" | Deployment: {event.deployment_id[:8]}..."
        blocks.append({
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": context}],
        })

        return {"text": title, "blocks": blocks}

    async def send(self, event: DeploymentEvent) -> bool:
        """Send notification to Slack via webhook."""
        if not self.enabled:
            logger.warning("Slack channel is not properly configured (missing webhook_url)")
            return False

        message = self._build_blocks(event)
        headers = {"Content-Type": "application/json"}

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                response = await client.post(self._webhook_url, headers=headers, json=message)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise NotificationError(f"Slack webhook request failed: {e!r}") from e

            # Slack webhooks return "ok" as plain text on success
            if response.text != "ok":
                raise NotificationError(f"Slack webhook error: {response.text}")

            logger.info("Message sent to Slack webhook successfully")
            return True
