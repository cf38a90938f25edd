"""Terminal channel used by the local adapter."""

import itertools
import sys
from typing import TextIO

from channels.base_channel import BaseChannel, DeliveryError
from relay.models import ConversationID, MessageHandle


class ConsoleChannel(BaseChannel):
    """Prints every write. Edits are shown as a reprint of the whole message."""

    def __init__(self, out: TextIO | None = None, sanitize=None, show_edits: bool = True):
        super().__init__(sanitize)
        self._out = out or sys.stdout
        self._ids = itertools.count(1)
        self._live: set[str] = set()
        self.show_edits = show_edits

    def _send(self, conversation_id: ConversationID, text: str, reply_to: str | None) -> MessageHandle:
        message_id = str(next(self._ids))
        self._live.add(message_id)
        print(f"Bot: {text}", file=self._out)
        return MessageHandle(conversation_id, message_id, reply_to)

    def _edit(self, handle: MessageHandle, text: str) -> MessageHandle:
        if handle.message_id not in self._live:
            raise DeliveryError(f"message {handle.message_id} does not exist")
        if self.show_edits:
            print(f"Bot (edit): {text}", file=self._out)
        return handle

    def _remove(self, handle: MessageHandle) -> None:
        if handle.message_id not in self._live:
            raise DeliveryError(f"message {handle.message_id} does not exist")
        self._live.discard(handle.message_id)

    def notify_typing(self, conversation_id: ConversationID) -> None:
        print("Bot is typing...", file=self._out)
