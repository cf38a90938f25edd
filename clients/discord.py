"""Discord webhook wrapper for admin notifications."""

import logging

import requests
from discord_webhook import DiscordWebhook

logger = logging.getLogger(__name__)


class DiscordWebhookClient:
    def __init__(self, webhook_url: str, role_id: str = "", timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.role_id = role_id
        self.timeout = timeout

    def send(self, message: str):
        if self.role_id:
            content = f"<@&{self.role_id}> {message}"
            allowed_mentions = {"roles": [self.role_id]}
        else:
            content = message
            allowed_mentions = {"parse": []}

        webhook = DiscordWebhook(
            url=self.webhook_url,
            content=content,
            allowed_mentions=allowed_mentions,
            timeout=self.timeout,
        )
        return webhook.execute()


def notify_admins(client: DiscordWebhookClient | None, message: str) -> bool:
    """Post `message` to the admin webhook; failures are logged, never raised."""
    if client is None:
        return False
    try:
        response = client.send(message)
    except (requests.RequestException, ValueError) as e:
        logger.warning("Admin notification failed: %s", e)
        return False
    if response.status_code not in (200, 204):
        logger.warning("Admin notification returned unexpected status %d", response.status_code)
        return False
    return True
