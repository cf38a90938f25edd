"""Entrypoint: load config, wire layers, run the terminal adapter."""

import logging
import os

from openai import OpenAI

from adapters.terminal import run_terminal
from bot_config import BotConfig, load_config
from channels.base_channel import BaseChannel
from channels.console import ConsoleChannel
from channels.discord_channel import DiscordWebhookChannel
from channels.formatting import sanitize_markdown
from clients.discord import DiscordWebhookClient, notify_admins
from relay.commands import CommandRouter
from relay.engine import ChatRelay
from relay.store import InMemoryHistoryStore


def _configure_logging() -> None:
    level = getattr(logging, os.getenv("LOG_LEVEL", "ERROR").upper(), logging.ERROR)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_channel(config: BotConfig) -> BaseChannel:
    if config.channel == "discord":
        return DiscordWebhookChannel(config.discord_webhook_url, sanitize=sanitize_markdown)
    return ConsoleChannel(sanitize=sanitize_markdown)


def terminal_conversation_id(config: BotConfig) -> str:
    """Conversation id for terminal input: the configured Discord thread, or "local" on the console."""
    if config.channel == "discord":
        return config.thread_id
    return "local"


def build_relay(config: BotConfig, channel: BaseChannel) -> ChatRelay:
    client = OpenAI(api_key=config.api_key, base_url=config.base_url, timeout=config.timeout_seconds)
    return ChatRelay(
        client,
        channel,
        InMemoryHistoryStore(config.history_size),
        model=config.model,
        system_prompt=config.system_prompt,
        temperature=config.temperature,
        max_reply_tokens=config.max_reply_tokens,
        min_reply_interval_private=config.min_reply_interval_private,
        min_reply_interval_group=config.min_reply_interval_group,
    )


def main() -> None:
    _configure_logging()
    config = load_config(os.environ.get("BOT_CONFIG", ""))
    relay = build_relay(config, build_channel(config))
    router = CommandRouter(relay, bot_name=config.bot_name, chat_command=config.chat_command)

    admins = None
    if config.admin_webhook_url:
        admins = DiscordWebhookClient(config.admin_webhook_url, config.admin_role_id)
    notify_admins(admins, "🤖 Bot started")

    run_terminal(router, conversation_id=terminal_conversation_id(config))


if __name__ == "__main__":
    main()
