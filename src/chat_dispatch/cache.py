"""Time-bounded cache of recently seen messages used for delete recovery."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from .models import MessageContent, MessageKey

logger = logging.getLogger(__name__)


class MessageStore(Protocol):
    """Anything able to return the last known content of a message."""

    async def load_message(
        self, chat_id: str, message_id: str
    ) -> MessageContent | None: ...


@dataclass(frozen=True, slots=True)
class CacheEntry:
    content: MessageContent
    inserted_at: float


class MessageCache:
    """Keep the latest content per ``(chat, message)`` for ``retention`` seconds.

    Expired entries are purged on every :meth:`record` call instead of by a
    background timer, and :meth:`lookup` never returns an expired entry even
    if it has not been purged yet.
    """

    def __init__(
        self,
        retention: float = 3600.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention <= 0:
            raise ValueError("retention must be positive")
        self._retention = float(retention)
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    @property
    def retention(self) -> float:
        return self._retention

    def record(
        self,
        key: MessageKey | tuple[str, str],
        content: MessageContent,
        timestamp: float | None = None,
    ) -> None:
        """Insert or overwrite the entry for ``key`` and purge expired ones."""

        cache_key = _as_cache_key(key)
        inserted_at = self._clock() if timestamp is None else float(timestamp)
        # Re-inserting keeps dict order close to insertion-time order.
        self._entries.pop(cache_key, None)
        self._entries[cache_key] = CacheEntry(content=content, inserted_at=inserted_at)
        # Expiry is judged against the clock even when the caller back-dates an entry.
        self.sweep(now=max(self._clock(), inserted_at))

    def lookup(
        self, key: MessageKey | tuple[str, str], now: float | None = None
    ) -> MessageContent | None:
        entry = self._entries.get(_as_cache_key(key))
        if entry is None:
            return None
        moment = self._clock() if now is None else now
        if moment - entry.inserted_at > self._retention:
            return None
        return entry.content

    def sweep(self, now: float | None = None, retention: float | None = None) -> int:
        """Drop entries older than ``retention``; return how many were removed."""

        moment = self._clock() if now is None else now
        window = self._retention if retention is None else retention
        expired = [
            cache_key
            for cache_key, entry in self._entries.items()
            if moment - entry.inserted_at > window
        ]
        for cache_key in expired:
            del self._entries[cache_key]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    async def load_message(
        self, chat_id: str, message_id: str
    ) -> MessageContent | None:
        return self.lookup((chat_id, message_id))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, tuple):
            if len(key) != 2:
                return False
        elif not isinstance(key, MessageKey):
            return False
        return self.lookup(key) is not None


def _as_cache_key(key: MessageKey | tuple[str, str]) -> tuple[str, str]:
    if isinstance(key, MessageKey):
        return key.cache_key
    chat_id, message_id = key
    return (str(chat_id), str(message_id))
