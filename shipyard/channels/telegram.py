"""Telegram notification channel using the Bot API."""

import logging
import re
from typing import Any

import httpx

from shipyard.channels.base import BaseChannel
from shipyard.errors import NotificationError
from shipyard.models.event import DeploymentEvent

logger = logging.getLogger(__name__)


def escape_markdown(text: str) -> str:
    """Escape the entities of Telegram's legacy Markdown parse mode."""
    return re.sub(r"([_*`\[])", r"\\\1", text)


class TelegramChannel(BaseChannel):
    """Send deployment outcomes to a Telegram chat via sendMessage."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_url = api_url.rstrip("/")
        self._transport = transport

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def _format_message(self, event: DeploymentEvent) -> str:
        time_str = event.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")
        if event.succeeded:
            return (
                "✅ *Deployment Successful*\n\n"
                f"*Project:* {escape_markdown(event.project_name)}\n"
                f"*URL:* {escape_markdown(event.deployment_url or '-')}\n"
                f"*Status:* {event.outcome.value}\n"
                f"*Time:* {time_str}"
            )
        return (
            "❌ *Deployment Failed*\n\n"
            f"*Project:* {escape_markdown(event.project_name)}\n"
            f"*Status:* {event.outcome.value}\n"
            f"*Error:* {escape_markdown(event.error or 'Unknown error')}\n"
            f"*Time:* {time_str}"
        )

    async def send(self, event: DeploymentEvent) -> bool:
        if not self.enabled:
            logger.warning("Telegram channel is not properly configured (missing bot_token or chat_id)")
            return False

        message: dict[str, Any] = {
            "chat_id": self._chat_id,
            "text": self._format_message(event),
            "parse_mode": "Markdown",
        }
        url = f"{self._api_url}/bot{self._bot_token}/sendMessage"

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                response = await client.post(url, json=message)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise NotificationError(f"Telegram request failed: {e!r}") from e

            result = response.json()
            if not result.get("ok"):
                raise NotificationError(f"Telegram API error: {result.get('description', result)}")

            logger.info(f"Telegram notification sent for project {event.project_name}")
            return True
