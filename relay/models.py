"""Data types shared by the relay engine, the history store and the channels."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

ConversationID = Union[int, str]

ERROR_PREFIX = "❌ Error"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One role-tagged utterance in a conversation."""

    role: Role
    content: str

    def as_message(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class IncomingMessage:
    """A message handed to the relay by the platform layer.

    `message_id` is the platform id of this message (used for in-thread
    replies in groups). `reply_to_text` is the text of the message it answers,
    if any; `reply_to_bot` tells whether that message was one of ours.
    """

    conversation_id: ConversationID
    text: str
    message_id: str | None = None
    reply_to_text: str | None = None
    is_group: bool = False
    reply_to_bot: bool = False


@dataclass(frozen=True)
class RequestContext:
    system: Turn
    history: tuple[Turn, ...]
    reply_to: Turn | None
    user: Turn

    @classmethod
    def build(
        cls,
        system_prompt: str,
        history: tuple[Turn, ...],
        message: IncomingMessage,
    ) -> "RequestContext":
        reply_to = None
        if message.reply_to_text is not None:
            reply_to = Turn(Role.ASSISTANT, message.reply_to_text)
        return cls(
            system=Turn(Role.SYSTEM, system_prompt),
            history=tuple(history),
            reply_to=reply_to,
            user=Turn(Role.USER, message.text),
        )

    def new_turns(self) -> list[Turn]:
        """Turns from this request that belong in history (no system preamble)."""
        turns = [self.reply_to] if self.reply_to is not None else []
        turns.append(self.user)
        return turns

    def as_messages(self) -> list[dict]:
        turns = [self.system, *self.history, *self.new_turns()]
        return [t.as_message() for t in turns]


@dataclass(frozen=True)
class MessageHandle:
    """Reference to a message the relay has written to a channel."""

    conversation_id: ConversationID
    message_id: str
    reply_to: str | None = None


class Degradation(str, Enum):
    NONE = "none"
    PLAIN_TEXT = "plain_text"
    REPUBLISHED = "republished"


@dataclass(frozen=True)
class Delivery:
    """Outcome of a channel write: where the text landed and what fallback got it there."""

    handle: MessageHandle
    degradation: Degradation = Degradation.NONE


@dataclass
class StreamingReply:
    text: str = ""
    last_published_text: str = ""
    last_publish_time: float = 0.0
    handle: MessageHandle | None = None


class Outcome(str, Enum):
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExchangeResult:
    text: str
    outcome: Outcome
    writes: int = 0
    delivery: Delivery | None = None
    errors: list[str] = field(default_factory=list)
