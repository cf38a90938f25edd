"""Discord webhook channel: streams replies into a webhook message and edits it in place."""

import logging

import requests
from discord_webhook import DiscordWebhook

from channels.base_channel import BaseChannel, DeliveryError
from relay.models import ConversationID, MessageHandle

logger = logging.getLogger(__name__)

# Discord rejects message content longer than this.
MAX_CONTENT_LENGTH = 2000

_OK_STATUSES = (200, 204)


def _fit(text: str) -> str:
    if len(text) <= MAX_CONTENT_LENGTH:
        return text
    return text[: MAX_CONTENT_LENGTH - 1] + "…"


class DiscordWebhookChannel(BaseChannel):
    """Writes relay replies through a Discord webhook.

    A numeric conversation id selects the webhook thread; any other id posts
    to the webhook's own channel. Webhooks cannot reference another message or show
    a typing indicator, so `reply_to` is only carried on the handle and
    `notify_typing` just logs.
    """

    def __init__(self, webhook_url: str, sanitize=None, timeout: float = 10.0):
        super().__init__(sanitize)
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _webhook(self, conversation_id: ConversationID, **kwargs) -> DiscordWebhook:
        thread_id = str(conversation_id) if conversation_id is not None else ""
        if not thread_id.isdigit():
            if thread_id:
                logger.debug("Conversation %r is not a thread id, posting to the webhook channel", thread_id)
            thread_id = None
        return DiscordWebhook(
            url=self.webhook_url,
            thread_id=thread_id,
            allowed_mentions={"parse": []},
            timeout=self.timeout,
            rate_limit_retry=True,
            **kwargs,
        )

    @staticmethod
    def _check(response, action: str) -> None:
        if response.status_code not in _OK_STATUSES:
            raise DeliveryError(f"Discord {action} returned status {response.status_code}")

    def _send(self, conversation_id: ConversationID, text: str, reply_to: str | None) -> MessageHandle:
        webhook = self._webhook(conversation_id, content=_fit(text))
        try:
            response = webhook.execute()
        except (requests.RequestException, ValueError) as e:
            raise DeliveryError(f"Discord send failed: {e}") from e
        self._check(response, "send")
        if not webhook.id:
            raise DeliveryError("Discord send returned no message id")
        return MessageHandle(conversation_id, str(webhook.id), reply_to)

    def _edit(self, handle: MessageHandle, text: str) -> MessageHandle:
        webhook = self._webhook(handle.conversation_id, id=handle.message_id, content=_fit(text))
        try:
            response = webhook.edit()
        except (requests.RequestException, ValueError) as e:
            raise DeliveryError(f"Discord edit failed: {e}") from e
        self._check(response, "edit")
        return handle

    def _remove(self, handle: MessageHandle) -> None:
        webhook = self._webhook(handle.conversation_id, id=handle.message_id)
        try:
            response = webhook.delete()
        except (requests.RequestException, ValueError) as e:
            raise DeliveryError(f"Discord delete failed: {e}") from e
        self._check(response, "delete")

    def notify_typing(self, conversation_id: ConversationID) -> None:
        logger.debug("Typing indicator for %s skipped (not available to webhooks)", conversation_id)
