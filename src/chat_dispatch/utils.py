"""Miscellaneous helpers."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

USER_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"
NEWSLETTER_SUFFIX = "@newsletter"
BROADCAST_SUFFIX = "@broadcast"
STATUS_JID = "status@broadcast"


class ChatGuard:
    """Serialise work per chat while letting different chats run concurrently."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._registry_lock = asyncio.Lock()

    @asynccontextmanager
    async def lock(self, chat_id: str) -> AsyncIterator[None]:
        async with self._registry_lock:
            lock = self._locks.get(chat_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[chat_id] = lock
            self._waiters[chat_id] = self._waiters.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters.get(chat_id, 1) - 1
            if remaining <= 0:
                self._waiters.pop(chat_id, None)
                self._locks.pop(chat_id, None)
            else:
                self._waiters[chat_id] = remaining

    def __len__(self) -> int:
        return len(self._locks)


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse textual boolean configuration values.

    Supported truthy values: ``on``, ``true``, ``yes``, ``1`` (case-insensitive).
    Supported falsy values: ``off``, ``false``, ``no``, ``0``.
    Any other value returns ``default``.
    """

    if value is None:
        return default
    normalized = value.strip().lower()
    if not normalized:
        return default
    if normalized in {"on", "true", "yes", "1"}:
        return True
    if normalized in {"off", "false", "no", "0"}:
        return False
    return default


def parse_seconds(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def bare_jid(jid: str | None) -> str:
    """Strip the device suffix: ``123:4@s.whatsapp.net`` -> ``123@s.whatsapp.net``."""

    if not jid:
        return ""
    user, sep, server = jid.partition("@")
    user = user.split(":", 1)[0]
    return f"{user}{sep}{server}" if sep else user


def user_jid(number_or_jid: str | None) -> str | None:
    """Return a personal account id for a phone number or an existing id."""

    if number_or_jid is None:
        return None
    candidate = number_or_jid.strip().lstrip("+")
    if not candidate:
        return None
    if "@" in candidate:
        return bare_jid(candidate)
    return f"{candidate}{USER_SUFFIX}"


def jid_user(jid: str | None) -> str:
    return bare_jid(jid).split("@", 1)[0]


def is_group_jid(jid: str | None) -> bool:
    return bool(jid) and jid.endswith(GROUP_SUFFIX)


def is_status_jid(jid: str | None) -> bool:
    return jid == STATUS_JID


def classify_chat(jid: str | None) -> str:
    """Return ``group``, ``newsletter``, ``status``, ``broadcast`` or ``private``."""

    if not jid:
        return "private"
    if is_status_jid(jid):
        return "status"
    if jid.endswith(GROUP_SUFFIX):
        return "group"
    if jid.endswith(NEWSLETTER_SUFFIX):
        return "newsletter"
    if jid.endswith(BROADCAST_SUFFIX):
        return "broadcast"
    return "private"


def same_user(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return bare_jid(left) == bare_jid(right)


def format_latency(sent_at: float | None, now: float) -> int:
    """Milliseconds elapsed since ``sent_at`` (epoch seconds), never negative."""

    if sent_at is None:
        return 0
    return max(0, int(round((now - sent_at) * 1000)))
