"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .models import Mode
from .utils import parse_bool, parse_seconds, user_jid

DEFAULT_PREFIX = "."
DEFAULT_PORT = 25680
DEFAULT_CACHE_RETENTION = 60 * 60.0
DEFAULT_STORE_RETENTION = 24 * 60 * 60.0
DEFAULT_REACT_EMOJIS = ("❤️", "🔥", "💯", "😍", "👏")
DEFAULT_BOT_NAME = "Chat Dispatch"
DEFAULT_DESCRIPTION = "Command dispatcher with delete recovery."
DEFAULT_STATUS_MESSAGE = "Seen your status 👀"
DEFAULT_LIVE_MESSAGE = "I am alive and listening."


class ConfigError(ValueError):
    """Raised when the environment holds an unusable configuration."""


@dataclass(slots=True)
class BotConfig:
    """Settings consumed by the dispatcher, recovery and status handlers."""

    owner_number: str
    prefix: str = DEFAULT_PREFIX
    mode: Mode = Mode.PUBLIC
    bot_name: str = DEFAULT_BOT_NAME
    description: str = DEFAULT_DESCRIPTION
    antidelete_group: bool = True
    antidelete_private: bool = True
    antidelete_send_to_original: bool = False
    auto_status_seen: bool = False
    auto_status_react: bool = False
    auto_status_reply: bool = False
    auto_status_message: str = DEFAULT_STATUS_MESSAGE
    status_saver: bool = False
    react_emojis: tuple[str, ...] = DEFAULT_REACT_EMOJIS
    auto_react_newsletter: bool = False
    read_commands: bool = False
    alive_image: str | None = None
    live_message: str = DEFAULT_LIVE_MESSAGE
    plugin_dir: Path = Path("plugins")
    port: int = DEFAULT_PORT
    cache_retention: float = DEFAULT_CACHE_RETENTION
    store_retention: float = DEFAULT_STORE_RETENTION
    reply_context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def owner_jid(self) -> str:
        jid = user_jid(self.owner_number)
        if jid is None:
            raise ConfigError("OWNER_NUMBER is missing")
        return jid

    def summary_rows(self) -> list[tuple[str, str]]:
        """Name/value pairs shown in the startup notice."""

        return [
            ("MODE", self.mode.value),
            ("ANTIDELETE_GROUP", str(self.antidelete_group).lower()),
            ("ANTIDELETE_PRIVATE", str(self.antidelete_private).lower()),
            ("AUTO_STATUS_SEEN", str(self.auto_status_seen).lower()),
            ("AUTO_STATUS_REACT", str(self.auto_status_react).lower()),
            ("AUTO_STATUS_REPLY", str(self.auto_status_reply).lower()),
            ("STATUS_SAVER", str(self.status_saver).lower()),
            ("AUTO_REACT_NEWSLETTER", str(self.auto_react_newsletter).lower()),
        ]

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "BotConfig":
        source = os.environ if env is None else env

        def flag(name: str, default: bool) -> bool:
            return parse_bool(source.get(name), default)

        owner = (source.get("OWNER_NUMBER") or "").strip()
        if not user_jid(owner):
            raise ConfigError("OWNER_NUMBER must be set to the owner's phone number")

        raw_mode = source.get("MODE")
        mode = Mode.parse(raw_mode) if raw_mode else Mode.PUBLIC
        if mode is None:
            raise ConfigError(f"MODE must be 'public' or 'private', got {raw_mode!r}")

        prefix = source.get("PREFIX") or DEFAULT_PREFIX
        if any(ch.isspace() for ch in prefix):
            raise ConfigError("PREFIX must not contain whitespace")

        raw_port = (source.get("PORT") or "").strip()
        try:
            port = int(raw_port) if raw_port else DEFAULT_PORT
        except ValueError as exc:
            raise ConfigError(f"PORT must be an integer, got {raw_port!r}") from exc

        emojis = tuple(
            item.strip()
            for item in (source.get("CUSTOM_REACT_EMOJIS") or "").split(",")
            if item.strip()
        )

        bot_name = source.get("BOT_NAME") or DEFAULT_BOT_NAME
        newsletter_id = (source.get("NEWSLETTER_JID") or "").strip()
        reply_context: dict[str, Any] = {}
        if newsletter_id:
            reply_context = {
                "forwarding_score": 999,
                "is_forwarded": True,
                "newsletter_jid": newsletter_id,
                "newsletter_name": bot_name,
            }

        return cls(
            owner_number=owner,
            prefix=prefix,
            mode=mode,
            bot_name=bot_name,
            description=source.get("DESCRIPTION") or DEFAULT_DESCRIPTION,
            antidelete_group=flag("ANTIDELETE_GROUP", True),
            antidelete_private=flag("ANTIDELETE_PRIVATE", True),
            antidelete_send_to_original=flag("ANTIDELETE_SEND_TO_ORIGINAL", False),
            auto_status_seen=flag("AUTO_STATUS_SEEN", False),
            auto_status_react=flag("AUTO_STATUS_REACT", False),
            auto_status_reply=flag("AUTO_STATUS_REPLY", False),
            auto_status_message=source.get("AUTO_STATUS_MSG") or DEFAULT_STATUS_MESSAGE,
            status_saver=flag("STATUS_SAVER", False),
            react_emojis=emojis or DEFAULT_REACT_EMOJIS,
            auto_react_newsletter=flag("AUTO_REACT_NEWSLETTER", False),
            read_commands=flag("READ_MESSAGE", False),
            alive_image=(source.get("ALIVE_IMG") or "").strip() or None,
            live_message=source.get("LIVE_MSG") or DEFAULT_LIVE_MESSAGE,
            plugin_dir=Path(source.get("PLUGIN_DIR") or "plugins"),
            port=port,
            cache_retention=parse_seconds(
                source.get("CACHE_RETENTION"), DEFAULT_CACHE_RETENTION
            ),
            store_retention=parse_seconds(
                source.get("STORE_RETENTION"), DEFAULT_STORE_RETENTION
            ),
            reply_context=reply_context,
        )
