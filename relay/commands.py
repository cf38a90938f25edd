"""Command routing: decides what an incoming message asks the relay to do."""

import logging
from dataclasses import replace

import openai

from relay.engine import ChatRelay
from relay.models import ERROR_PREFIX, ExchangeResult, IncomingMessage

logger = logging.getLogger(__name__)

COMMAND_CHARS = ("/", "!")
DEFAULT_CHAT_COMMAND = "chat"


class CommandRouter:
    """Maps `/cmd` and `!cmd` messages to actions and plain text to chat exchanges.

    Plain text starts an exchange in private conversations, and in groups only
    when the message replies to one of the bot's own messages.
    """

    def __init__(self, relay: ChatRelay, bot_name: str = "Chat relay", chat_command: str = DEFAULT_CHAT_COMMAND):
        self._relay = relay
        self.bot_name = bot_name
        self.chat_command = chat_command

    def handle(self, message: IncomingMessage) -> ExchangeResult | None:
        if not message.text:
            return None

        if message.text[0] in COMMAND_CHARS:
            return self._dispatch(message)

        if not message.is_group or message.reply_to_bot:
            return self._relay.chat(message)

        logger.debug("Ignoring group message in %s not addressed to the bot", message.conversation_id)
        return None

    @staticmethod
    def parse(text: str) -> tuple[str, str, str]:
        """Split a command message into (command char, command, remaining text)."""
        word = text.split(" ")[0]
        rest = text[len(word):]
        if rest.startswith(" "):
            rest = rest[1:]
        cmd = word.split("@")[0]
        return cmd[0], cmd[1:], rest

    def _dispatch(self, message: IncomingMessage) -> ExchangeResult | None:
        cmd_char, cmd, rest = self.parse(message.text)

        if cmd == self.chat_command:
            logger.info("Interpreting as chat command")
            if not rest:
                self._relay.reply(message, f"{ERROR_PREFIX}: empty message")
                return None
            return self._relay.chat(replace(message, text=rest))
        if cmd == "balance":
            self._relay.reply(message, self._balance_text())
        elif cmd == "help":
            self._relay.reply(message, self.help_text(cmd_char))
        elif cmd == "start":
            if not message.is_group:
                self._relay.reply(message, f"🤖 Welcome! This is the {self.bot_name}.")
        elif cmd == "reset":
            self._relay.store.reset(message.conversation_id)
            self._relay.reply(message, "🧹 Conversation history cleared.")
        else:
            logger.info("Invalid command: %s", cmd)
            if not message.is_group:
                self._relay.reply(message, f"{ERROR_PREFIX}: invalid command")
        return None

    def _balance_text(self) -> str:
        try:
            balances = self._relay.fetch_balance()
        except (openai.OpenAIError, ValueError) as e:
            logger.error("Balance lookup failed: %s", e)
            return f"{ERROR_PREFIX}: {e}"
        if not balances:
            return f"{ERROR_PREFIX}: balance not available"
        first = balances[0]
        text = f"💰 {first.get('total_balance', '?')} {first.get('currency', '')}".rstrip()
        logger.info("Balance reply: %s", text)
        return text

    def help_text(self, cmd_char: str = "/") -> str:
        return (
            f"🤖 {self.bot_name}\n\n"
            "Available commands:\n\n"
            f"{cmd_char}{self.chat_command} - send chat message\n"
            f"{cmd_char}balance - show balance\n"
            f"{cmd_char}reset - forget the conversation history\n"
            f"{cmd_char}help - show this help"
        )
