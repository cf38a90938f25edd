"""Abstract message channel contract."""

import functools
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

from relay.models import ConversationID, Degradation, Delivery, MessageHandle

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A channel write failed, or every fallback for it did."""


def _truncate(s, max_len: int = 200) -> str:
    if not isinstance(s, str):
        s = str(s)
    return s[:max_len] + "..." if len(s) > max_len else s


def log_delivery(fn):
    """Decorator: log channel operation, args, result and duration."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        name = fn.__name__
        safe_args = [_truncate(repr(a), 120) for a in args]
        logger.debug("%s.%s args=%s", type(self).__name__, name, safe_args)
        start = time.perf_counter()
        try:
            result = fn(self, *args, **kwargs)
        except DeliveryError as e:
            elapsed = time.perf_counter() - start
            logger.warning("%s failed after %.3fs: %s", name, elapsed, e)
            raise
        elapsed = time.perf_counter() - start
        logger.debug("%s returned in %.3fs: %s", name, elapsed, _truncate(result))
        return result
    return wrapper


class BaseChannel(ABC):
    """Contract for the platform a relay writes to.

    Subclasses implement the raw primitives (`_send`, `_edit`, `_remove`,
    `notify_typing`) and raise DeliveryError when the platform rejects a
    write. The public `publish`/`update` methods run the rich-then-plain
    fallback on top of them and report which one landed via `Delivery`.
    """

    def __init__(self, sanitize: Callable[[str], str] | None = None):
        self._sanitize = sanitize or (lambda text: text)

    @abstractmethod
    def _send(self, conversation_id: ConversationID, text: str, reply_to: str | None) -> MessageHandle:
        """Post a new message and return its handle."""
        ...

    @abstractmethod
    def _edit(self, handle: MessageHandle, text: str) -> MessageHandle:
        """Replace the text of an existing message."""
        ...

    @abstractmethod
    def _remove(self, handle: MessageHandle) -> None:
        ...

    @abstractmethod
    def notify_typing(self, conversation_id: ConversationID) -> None:
        """Show a "working" indicator. Must not raise."""
        ...

    @log_delivery
    def publish(self, conversation_id: ConversationID, text: str, reply_to: str | None = None) -> Delivery:
        return self._first_success([
            (Degradation.NONE, lambda: self._send(conversation_id, self._sanitize(text), reply_to)),
            (Degradation.PLAIN_TEXT, lambda: self._send(conversation_id, text, reply_to)),
        ])

    @log_delivery
    def update(self, handle: MessageHandle, text: str) -> Delivery:
        return self._first_success([
            (Degradation.NONE, lambda: self._edit(handle, self._sanitize(text))),
            (Degradation.PLAIN_TEXT, lambda: self._edit(handle, text)),
        ])

    @log_delivery
    def delete(self, handle: MessageHandle) -> bool:
        try:
            self._remove(handle)
        except DeliveryError as e:
            logger.warning("Delete of message %s failed: %s", handle.message_id, e)
            return False
        return True

    @staticmethod
    def _first_success(attempts: list[tuple[Degradation, Callable[[], MessageHandle]]]) -> Delivery:
        errors = []
        for degradation, attempt in attempts:
            try:
                return Delivery(attempt(), degradation)
            except DeliveryError as e:
                logger.info("Write attempt (%s) failed: %s", degradation.value, e)
                errors.append(str(e))
        raise DeliveryError("; ".join(errors))
