"""Bot config loader.

Each deployment has a YAML file that declares non-secret config inline and
references secret values by env var name. Call load_config() with the path
from the BOT_CONFIG environment variable.

Usage:
    config = load_config(os.environ.get("BOT_CONFIG", ""))
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

CHANNELS = ("console", "discord")


class ConfigError(Exception):
    """The bot config is missing, malformed, or references an unset env var."""


@dataclass
class BotConfig:
    bot_name: str
    chat_command: str
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_reply_tokens: int
    system_prompt: str
    timeout_seconds: float
    history_size: int
    channel: str
    discord_webhook_url: str
    min_reply_interval_private: float
    min_reply_interval_group: float
    thread_id: str
    admin_webhook_url: str
    admin_role_id: str


def _number(section: dict, key: str, default, kind, where: str):
    value = section.get(key, default)
    try:
        value = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid {where}.{key}: {value!r}") from None
    if value < 0:
        raise ConfigError(f"{where}.{key} must be >= 0, got {value}")
    return value


def parse_config(raw: dict, source: str = "<config>") -> BotConfig:
    """Build a BotConfig from parsed YAML, resolving secrets from the environment."""

    def _env(key_name: str | None, required: bool = True) -> str:
        if not key_name:
            if required:
                raise ConfigError(f"Missing env var name for a required secret (in {source})")
            return ""
        val = (os.environ.get(key_name) or "").strip()
        if not val and required:
            raise ConfigError(f"Missing required env var '{key_name}' (referenced in {source})")
        return val

    raw = raw or {}
    bot = raw.get("bot", {})
    backend = raw.get("backend", {})
    history = raw.get("history", {})
    delivery = raw.get("delivery", {})
    intervals = delivery.get("min_reply_interval", {})
    env = raw.get("env", {})
    admin = raw.get("admin", {})

    channel = delivery.get("channel", "console")
    if channel not in CHANNELS:
        raise ConfigError(f"Unknown delivery.channel {channel!r} (expected one of {', '.join(CHANNELS)})")

    thread_id = str(delivery.get("thread_id", "") or "")
    if thread_id and not thread_id.isdigit():
        raise ConfigError(f"delivery.thread_id must be a numeric Discord thread id, got {thread_id!r}")

    return BotConfig(
        bot_name=bot.get("name", "Chat relay"),
        chat_command=bot.get("chat_command", "chat"),
        api_key=_env(env.get("api_key_env_key", "DS_API_KEY")),
        base_url=backend.get("base_url", "https://api.deepseek.com"),
        model=backend.get("model", "deepseek-chat"),
        temperature=_number(backend, "temperature", 1.3, float, "backend"),
        max_reply_tokens=_number(backend, "max_reply_tokens", 2048, int, "backend"),
        system_prompt=backend.get("system_prompt", "") or "",
        timeout_seconds=_number(backend, "timeout_seconds", 60.0, float, "backend"),
        history_size=_number(history, "size", 4, int, "history"),
        channel=channel,
        discord_webhook_url=_env(
            env.get("discord_webhook_url_env_key", "DISCORD_WEBHOOK_URL"), required=channel == "discord"
        ),
        min_reply_interval_private=_number(intervals, "private", 1.0, float, "delivery.min_reply_interval"),
        min_reply_interval_group=_number(intervals, "group", 3.0, float, "delivery.min_reply_interval"),
        thread_id=thread_id,
        admin_webhook_url=_env(admin.get("webhook_url_env_key"), required=False),
        admin_role_id=str(admin.get("mention_role_id", "") or ""),
    )


def load_config(config_path: str) -> BotConfig:
    """Load and validate a bot config from a YAML file.

    Secrets are never stored in the YAML; the YAML holds the env var *name*
    and this function resolves the actual value from the environment. Exits
    with a clear error message if BOT_CONFIG is unset, the file is missing,
    or the config is invalid.
    """
    if not config_path:
        sys.exit("BOT_CONFIG environment variable is not set.")

    path = Path(config_path)
    if not path.exists():
        sys.exit(f"Bot config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    try:
        return parse_config(raw, str(path))
    except ConfigError as e:
        sys.exit(f"Invalid bot config: {e}")
