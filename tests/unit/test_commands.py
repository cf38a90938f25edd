"""Unit tests for command routing."""

from unittest.mock import MagicMock

import httpx
import openai
import pytest

from relay.commands import CommandRouter
from relay.models import IncomingMessage


def _make_router(chat_command: str = "chat") -> tuple[CommandRouter, MagicMock]:
    relay = MagicMock()
    return CommandRouter(relay, bot_name="Test bot", chat_command=chat_command), relay


def _replied_texts(relay: MagicMock) -> list[str]:
    return [c.args[1] for c in relay.reply.call_args_list]


@pytest.mark.unit
@pytest.mark.parametrize("text, expected", [
    ("/chat hello there", ("/", "chat", "hello there")),
    ("!chat@relay_bot hi", ("!", "chat", "hi")),
    ("/help", ("/", "help", "")),
    ("/chat  two spaces", ("/", "chat", " two spaces")),
])
def test_parse_splits_command(text, expected):
    assert CommandRouter.parse(text) == expected


@pytest.mark.unit
def test_private_plain_text_starts_exchange():
    router, relay = _make_router()
    message = IncomingMessage(conversation_id=5, text="What is 2+2?")

    router.handle(message)

    relay.chat.assert_called_once_with(message)


@pytest.mark.unit
def test_group_plain_text_needs_reply_to_bot():
    """
    Story: In a group, chatter between people is ignored; a reply to one of the
    bot's messages starts an exchange.
    """
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=-1, text="lunch?", is_group=True))
    relay.chat.assert_not_called()

    reply = IncomingMessage(
        conversation_id=-1, text="go on", is_group=True, reply_to_bot=True, reply_to_text="earlier"
    )
    router.handle(reply)
    relay.chat.assert_called_once_with(reply)


@pytest.mark.unit
def test_chat_command_strips_command_word():
    router, relay = _make_router(chat_command="ds")

    router.handle(IncomingMessage(conversation_id=-1, text="/ds@bot tell me a joke", is_group=True))

    sent = relay.chat.call_args.args[0]
    assert sent.text == "tell me a joke"
    assert sent.is_group is True


@pytest.mark.unit
def test_empty_chat_command_is_rejected():
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=5, text="/chat"))

    relay.chat.assert_not_called()
    assert _replied_texts(relay) == ["❌ Error: empty message"]


@pytest.mark.unit
def test_help_uses_invoking_command_char():
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=5, text="!help"))

    (text,) = _replied_texts(relay)
    assert "!chat - send chat message" in text
    assert "!help - show this help" in text


@pytest.mark.unit
def test_reset_clears_history():
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=5, text="/reset"))

    relay.store.reset.assert_called_once_with(5)
    assert len(_replied_texts(relay)) == 1


@pytest.mark.unit
def test_start_only_answers_in_private():
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=-1, text="/start", is_group=True))
    assert _replied_texts(relay) == []

    router.handle(IncomingMessage(conversation_id=5, text="/start"))
    assert _replied_texts(relay) == ["🤖 Welcome! This is the Test bot."]


@pytest.mark.unit
def test_unknown_command_errors_only_in_private():
    router, relay = _make_router()

    router.handle(IncomingMessage(conversation_id=-1, text="/nope", is_group=True))
    assert _replied_texts(relay) == []

    router.handle(IncomingMessage(conversation_id=5, text="/nope"))
    assert _replied_texts(relay) == ["❌ Error: invalid command"]
    relay.chat.assert_not_called()


@pytest.mark.unit
def test_empty_text_is_ignored():
    router, relay = _make_router()

    assert router.handle(IncomingMessage(conversation_id=5, text="")) is None
    relay.chat.assert_not_called()
    relay.reply.assert_not_called()


@pytest.mark.unit
def test_balance_reports_first_balance_entry():
    router, relay = _make_router()
    relay.fetch_balance.return_value = [
        {"currency": "CNY", "total_balance": "110.00"},
        {"currency": "USD", "total_balance": "3.50"},
    ]

    router.handle(IncomingMessage(conversation_id=5, text="/balance"))

    assert _replied_texts(relay) == ["💰 110.00 CNY"]
    relay.chat.assert_not_called()


@pytest.mark.unit
def test_balance_without_entries_is_an_error():
    router, relay = _make_router()
    relay.fetch_balance.return_value = []

    router.handle(IncomingMessage(conversation_id=5, text="!balance"))

    assert _replied_texts(relay) == ["❌ Error: balance not available"]


@pytest.mark.unit
def test_balance_lookup_failure_is_reported():
    """
    Story: The backend rejects the balance request. The user gets one error
    reply carrying the reason; nothing is raised to the platform layer.
    """
    router, relay = _make_router()
    relay.fetch_balance.side_effect = openai.APIConnectionError(
        request=httpx.Request("GET", "https://api.deepseek.com/user/balance")
    )

    router.handle(IncomingMessage(conversation_id=5, text="/balance"))

    (text,) = _replied_texts(relay)
    assert text.startswith("❌ Error: ")


@pytest.mark.unit
def test_help_lists_balance_command():
    router, _ = _make_router()
    assert "/balance - show balance" in router.help_text("/")
