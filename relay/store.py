from typing import Iterable, Protocol

from relay.models import ConversationID, Turn

DEFAULT_HISTORY_SIZE = 4


class HistoryStore(Protocol):
    def get(self, conversation_id: ConversationID) -> tuple[Turn, ...]: ...
    def append(self, conversation_id: ConversationID, turns: Iterable[Turn]) -> None: ...
    def reset(self, conversation_id: ConversationID) -> None: ...


class InMemoryHistoryStore:
    """Bounded per-conversation turn log, oldest first.

    Not locked: callers must not run two exchanges on the same conversation
    at once, or their appends may interleave.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if history_size < 0:
            raise ValueError(f"history_size must be >= 0, got {history_size}")
        self.history_size = history_size
        self._data: dict[ConversationID, list[Turn]] = {}

    def get(self, conversation_id: ConversationID) -> tuple[Turn, ...]:
        return tuple(self._data.get(conversation_id, ()))

    def append(self, conversation_id: ConversationID, turns: Iterable[Turn]) -> None:
        history = self._data.setdefault(conversation_id, [])
        history.extend(turns)
        overflow = len(history) - self.history_size
        if overflow > 0:
            del history[:overflow]

    def reset(self, conversation_id: ConversationID) -> None:
        self._data.pop(conversation_id, None)
