"""Relay engine: streams a chat completion into a rate-limited chat message.

Purpose
-------
The engine owns "answer this message in the chat". Callers (the terminal
adapter, a platform bot, tests) hand it an IncomingMessage; the engine builds
the request from the conversation history, streams the completion, and keeps
one visible reply message up to date while tokens arrive. Edits are spaced at
least `min_reply_interval` apart, and the last edit always carries the full
text, however the stream ended.

Interface contract
------------------
- **Input:** one IncomingMessage, optionally a threading.Event to cancel.
- **Output:** an ExchangeResult. Failures never raise to the caller; they are
  reported in the chat as a single error reply and in the result's outcome.
- **Caller contract:** at most one exchange per conversation at a time. The
  history store is not locked.
"""

import logging
import threading
import time
from typing import Callable

import httpx
import openai

from channels.base_channel import BaseChannel, DeliveryError
from relay.models import (
    ERROR_PREFIX,
    Degradation,
    Delivery,
    ExchangeResult,
    IncomingMessage,
    Outcome,
    RequestContext,
    Role,
    StreamingReply,
    Turn,
)
from relay.store import HistoryStore, InMemoryHistoryStore

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "deepseek-chat"
MIN_REPLY_INTERVAL_PRIVATE = 1.0
MIN_REPLY_INTERVAL_GROUP = 3.0


def _truncate(s: str, max_len: int = 400) -> str:
    return s[:max_len] + "..." if len(s) > max_len else s


def _wait(cancel: threading.Event, seconds: float) -> bool:
    return cancel.wait(seconds)


def _close_on_cancel(stream, cancel: threading.Event, done: threading.Event, poll: float = 0.05) -> None:
    """Close `stream` as soon as `cancel` is set, so a blocked read returns; exit once `done` is set."""
    while not done.is_set():
        if cancel.wait(poll):
            if not done.is_set():
                logger.info("Cancellation requested, closing completion stream")
                stream.close()
            return


class ChatRelay:
    """Relays one conversation turn to a streaming completion backend and back.

    `clock` and `wait` are injectable so throttling can be driven by a fake
    clock; `wait(cancel, seconds)` must return True when cancelled.
    """

    def __init__(
        self,
        client: openai.OpenAI,
        channel: BaseChannel,
        store: HistoryStore | None = None,
        *,
        model: str = DEFAULT_MODEL,
        system_prompt: str = "",
        temperature: float | None = None,
        max_reply_tokens: int | None = None,
        min_reply_interval_private: float = MIN_REPLY_INTERVAL_PRIVATE,
        min_reply_interval_group: float = MIN_REPLY_INTERVAL_GROUP,
        clock: Callable[[], float] = time.monotonic,
        wait: Callable[[threading.Event, float], bool] = _wait,
    ):
        self._client = client
        self._channel = channel
        self._store = store if store is not None else InMemoryHistoryStore()
        self.model = model
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_reply_tokens = max_reply_tokens
        self.min_reply_interval_private = min_reply_interval_private
        self.min_reply_interval_group = min_reply_interval_group
        self._clock = clock
        self._wait = wait

    @property
    def store(self) -> HistoryStore:
        return self._store

    def min_reply_interval(self, message: IncomingMessage) -> float:
        if message.is_group:
            return self.min_reply_interval_group
        return self.min_reply_interval_private

    @staticmethod
    def reply_target(message: IncomingMessage) -> str | None:
        """Groups get in-thread replies to the incoming message; private chats get standalone ones."""
        return message.message_id if message.is_group else None

    def reply(self, message: IncomingMessage, text: str) -> Delivery | None:
        """Send a one-off reply (errors, command output) following the reply policy."""
        try:
            return self._channel.publish(message.conversation_id, text, self.reply_target(message))
        except DeliveryError as e:
            logger.error("Could not deliver reply to %s: %s", message.conversation_id, e)
            return None

    def fetch_balance(self) -> list[dict]:
        """Return the backend account's balance entries (DeepSeek `/user/balance`)."""
        response = self._client.get("/user/balance", cast_to=httpx.Response)
        return response.json().get("balance_infos") or []

    def chat(self, message: IncomingMessage, cancel: threading.Event | None = None) -> ExchangeResult:
        watch_cancel = cancel is not None
        cancel = cancel or threading.Event()
        conversation_id = message.conversation_id
        request = RequestContext.build(self.system_prompt, self._store.get(conversation_id), message)
        logger.info(
            "Exchange starting for %s (history=%d): %s",
            conversation_id, len(request.history), _truncate(message.text, 120),
        )

        try:
            stream = self._open_stream(request)
        except openai.OpenAIError as e:
            logger.error("Completion stream could not be opened: %s", e)
            delivery = self.reply(message, f"{ERROR_PREFIX}: {e}")
            return ExchangeResult(
                "", Outcome.FAILED, writes=int(delivery is not None), delivery=delivery, errors=[str(e)]
            )

        self._channel.notify_typing(conversation_id)

        interval = self.min_reply_interval(message)
        reply = StreamingReply(last_publish_time=self._clock())
        result = ExchangeResult("", Outcome.DELIVERED)
        done = threading.Event()
        if watch_cancel:
            threading.Thread(
                target=_close_on_cancel, args=(stream, cancel, done), name="relay-cancel", daemon=True
            ).start()
        try:
            result.outcome = self._consume(stream, message, reply, interval, cancel, result)
        finally:
            done.set()
            stream.close()

        result.text = reply.text
        if result.outcome is Outcome.CANCELLED:
            logger.info("Exchange for %s cancelled with %d chars buffered", conversation_id, len(reply.text))
            return result

        elapsed = self._clock() - reply.last_publish_time
        if elapsed < interval and reply.text != reply.last_published_text:
            if self._wait(cancel, interval - elapsed):
                result.outcome = Outcome.CANCELLED
                return result

        if not reply.text:
            logger.warning("Backend returned an empty reply for %s", conversation_id)
            result.outcome = Outcome.FAILED
            result.errors.append("empty reply")
            result.delivery = self.reply(message, f"{ERROR_PREFIX}: empty reply")
            result.writes += int(result.delivery is not None)
            return result

        logger.info("Reply for %s: %s", conversation_id, _truncate(reply.text))
        try:
            result.delivery = self._final_write(message, reply)
            result.writes += 1
        except DeliveryError as e:
            logger.error("Final reply for %s could not be delivered: %s", conversation_id, e)
            result.outcome = Outcome.FAILED
            result.errors.append(str(e))
            if self.reply(message, f"{ERROR_PREFIX}: {e}") is not None:
                result.writes += 1

        self._store.append(conversation_id, [*request.new_turns(), Turn(Role.ASSISTANT, reply.text)])
        history = self._store.get(conversation_id)
        logger.debug("History for %s (%d turns):", conversation_id, len(history))
        for i, turn in enumerate(history):
            logger.debug("  %d: %s: %s", i, turn.role.value, _truncate(turn.content, 120))
        return result

    def _open_stream(self, request: RequestContext):
        kwargs = {}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_reply_tokens is not None:
            kwargs["max_tokens"] = self.max_reply_tokens
        return self._client.chat.completions.create(
            model=self.model,
            messages=request.as_messages(),
            stream=True,
            **kwargs,
        )

    def _consume(self, stream, message, reply, interval, cancel, result) -> Outcome:
        try:
            for chunk in stream:
                for choice in chunk.choices:
                    reply.text += choice.delta.content or ""
                if cancel.is_set():
                    return Outcome.CANCELLED
                if self._publish_due(reply, interval):
                    self._intermediate_write(message, reply, result)
        except (openai.APIError, httpx.HTTPError, httpx.StreamError) as e:
            if cancel.is_set():
                return Outcome.CANCELLED
            logger.warning("Stream for %s interrupted, keeping partial reply: %s", message.conversation_id, e)
            result.errors.append(str(e))
            return Outcome.PARTIAL
        if cancel.is_set():
            return Outcome.CANCELLED
        return Outcome.DELIVERED

    def _publish_due(self, reply: StreamingReply, interval: float) -> bool:
        return (
            self._clock() - reply.last_publish_time > interval
            and reply.text != ""
            and reply.text != reply.last_published_text
        )

    def _write(self, message: IncomingMessage, reply: StreamingReply) -> Delivery:
        if reply.handle is None:
            return self._channel.publish(message.conversation_id, reply.text, self.reply_target(message))
        return self._channel.update(reply.handle, reply.text)

    def _intermediate_write(self, message, reply, result) -> None:
        try:
            delivery = self._write(message, reply)
            reply.handle = delivery.handle
            result.writes += 1
        except DeliveryError as e:
            logger.warning("Intermediate reply update skipped: %s", e)
        reply.last_published_text = reply.text
        reply.last_publish_time = self._clock()

    def _final_write(self, message: IncomingMessage, reply: StreamingReply) -> Delivery:
        if reply.handle is None:
            return self._write(message, reply)
        try:
            return self._channel.update(reply.handle, reply.text)
        except DeliveryError as e:
            logger.warning("Final edit of message %s failed (%s), republishing", reply.handle.message_id, e)
        self._channel.delete(reply.handle)
        delivery = self._channel.publish(message.conversation_id, reply.text, reply.handle.reply_to)
        return Delivery(delivery.handle, Degradation.REPUBLISHED)
