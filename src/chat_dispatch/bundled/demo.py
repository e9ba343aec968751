"""Test command confirming the plugin system works."""

from __future__ import annotations

import time

from chat_dispatch.models import ExecutionContext
from chat_dispatch.utils import jid_user


async def execute(ctx: ExecutionContext) -> None:
    arguments = " ".join(ctx.args) or "None"
    owner = "Yes 👑" if ctx.is_owner else "No"
    text = "\n".join(
        [
            "✅ *Test Command Executed Successfully!*",
            "",
            f"• *Command:* {ctx.command}",
            f"• *Arguments:* {arguments}",
            f"• *Sender:* {jid_user(ctx.sender)}",
            f"• *Is Owner:* {owner}",
            f"• *Time:* {time.strftime('%H:%M:%S')}",
            "",
            "Try other commands:",
            f"{ctx.prefix}menu - Show all commands",
            f"{ctx.prefix}ping - Check bot latency",
            f"{ctx.prefix}mode - Change bot mode",
        ]
    )
    await ctx.reply(text)


handler = {
    "command": ("test", "demo"),
    "help": ["Shows a test message", "Usage: .test <optional text>"],
    "tags": ["fun", "utility"],
    "group": False,
    "admin": False,
    "bot_admin": False,
    "owner": False,
    "execute": execute,
}
