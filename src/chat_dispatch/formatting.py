"""Text rendering for replies, the menu and notifications."""

from __future__ import annotations

from typing import Sequence

from .models import ContentKind, Mode
from .registry import CommandInfo

CORE_COMMANDS: tuple[str, ...] = ("ping", "alive", "menu", "mode", "resetsession")

_MODE_ICONS = {Mode.PRIVATE: "🔒", Mode.PUBLIC: "🌍"}
_MODE_NOTES = {
    Mode.PRIVATE: "🔒 *Private Mode:* Only owner can use bot",
    Mode.PUBLIC: "🌍 *Public Mode:* Everyone can use bot",
}


def format_pong(latency_ms: int, bot_name: str) -> str:
    return f"🏓 *Pong!* {latency_ms} ms {bot_name} is live!"


def format_mode_usage(current: Mode, prefix: str) -> str:
    return (
        f"📊 *Current MODE:* {current.value}\n\n"
        f"*Usage:* {prefix}mode <private|public>\n\n"
        "• *private* - Only owner can use bot\n"
        "• *public* - Everyone can use bot"
    )


def format_mode_changed(mode: Mode) -> str:
    detail = (
        "🔒 Only you can use the bot now."
        if mode is Mode.PRIVATE
        else "🌍 Everyone can use the bot now."
    )
    return f"✅ Bot MODE changed to: *{mode.value.upper()}*\n\n{detail}"


def _command_line(info: CommandInfo, prefix: str) -> str:
    line = f"• {prefix}{info.command}"
    if info.owner:
        line += " 👑"
    if info.admin:
        line += " 👮"
    if info.group:
        line += " 👥"
    return f"{line} - {info.help}"


def format_menu(
    commands: Sequence[CommandInfo],
    *,
    prefix: str,
    mode: Mode,
    bot_name: str,
    description: str,
) -> str:
    lines = [
        f"*✦ {bot_name} ✦ Command Menu*",
        "",
        f"• *Prefix:* `{prefix}`",
        f"• *Mode:* {mode.value.upper()} {_MODE_ICONS[mode]}",
        f"• *Plugins Loaded:* {len(commands)}",
        "",
        "*📋 Core Commands:*",
    ]
    lines.extend(f"• {prefix}{name}" for name in CORE_COMMANDS)

    if commands:
        lines.append("")
        lines.append("*🔌 Plugin Commands:*")
        grouped: dict[str, list[str]] = {}
        for info in commands:
            tag = info.tags[0] if info.tags else "misc"
            grouped.setdefault(tag, []).append(_command_line(info, prefix))
        for tag, entries in grouped.items():
            lines.append("")
            lines.append(f"*{tag.upper()}:*")
            lines.extend(entries)

    lines.extend(
        [
            "",
            f"⚡ *Total Commands:* {len(CORE_COMMANDS) + len(commands)}",
            "",
            _MODE_NOTES[mode],
            "",
            "*Legend:*",
            "👑 = Owner only",
            "👮 = Admin only",
            "👥 = Group only",
            "",
            f"✨ {description}",
        ]
    )
    return "\n".join(lines)


def format_config_table(rows: Sequence[tuple[str, str]]) -> str:
    name_width = max([24, *(len(name) for name, _ in rows)])
    value_width = max([9, *(len(value) for _, value in rows)])
    border = "═" * (name_width + 2), "═" * (value_width + 2)
    lines = [
        f"╔{border[0]}╦{border[1]}╗",
        f"║ {'Config Name'.center(name_width)} ║ {'Value'.center(value_width)} ║",
        f"╠{border[0]}╬{border[1]}╣",
    ]
    for name, value in rows:
        lines.append(f"║ {name.ljust(name_width)} ║ {value.ljust(value_width)} ║")
    lines.append(f"╚{border[0]}╩{border[1]}╝")
    return "\n".join(lines)


def format_startup_notice(
    *,
    bot_name: str,
    prefix: str,
    mode: Mode,
    plugin_count: int,
    config_rows: Sequence[tuple[str, str]],
    description: str,
) -> str:
    return "\n".join(
        [
            f"*✨ {bot_name} is now active!*",
            "",
            f"• *Prefix:* `{prefix}`",
            f"• *Mode:* {mode.value}",
            f"• *Plugins Loaded:* {plugin_count}",
            "",
            "*⚙️ Active Configuration:*",
            "```",
            format_config_table(config_rows),
            "```",
            "",
            "*📝 Description:*",
            description,
        ]
    )


def format_recovered_notice(sender: str) -> str:
    return f"🚨 *Anti-Delete* — Message recovered from {sender}"


def format_delete_alert(sender_name: str, *, is_group: bool) -> str:
    chat = "Group" if is_group else "Private"
    return (
        "⚠️ *Anti-Delete Alert!*\n\n"
        f"👤 *Sender:* @{sender_name}\n"
        f"*Chat:* {chat}\n\n"
        "💬 *Restored Message:*"
    )


def format_unsupported(kind: ContentKind | str) -> str:
    value = kind.value if isinstance(kind, ContentKind) else kind
    return f"[Unsupported Message Type: {value}]"


def join_caption(header: str, caption: str | None) -> str:
    if caption:
        return f"{header}\n\n{caption}"
    return header


STATUS_SAVER_HEADER = "AUTO STATUS SAVER"


def format_saved_status(
    author_name: str, *, caption: str | None = None, is_audio: bool = False
) -> str:
    lines = [STATUS_SAVER_HEADER, "", f"*🩵 Status From:* {author_name}"]
    if caption:
        lines.append(f"*🩵 Caption:* {caption}")
    if is_audio:
        lines.append("*🩵 Audio Status*")
    return "\n".join(lines)


def format_saved_text_status(text: str | None) -> str:
    return f"{STATUS_SAVER_HEADER}\n\n{text or ''}"
