from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Sequence

from chat_dispatch.config import BotConfig
from chat_dispatch.models import (
    ContentKind,
    GroupMetadata,
    InboundMessage,
    MessageContent,
    MessageKey,
    OutgoingPayload,
)

OWNER_NUMBER = "1000"
OWNER = "1000@s.whatsapp.net"
BOT = "999@s.whatsapp.net"
USER = "2000@s.whatsapp.net"
GROUP = "12345-678@g.us"


class DummyTransport:
    def __init__(self, user_id: str | None = "999:7@s.whatsapp.net") -> None:
        self.user_id = user_id
        self.sent: list[tuple[str, OutgoingPayload, InboundMessage | None]] = []
        self.metadata: dict[str, GroupMetadata] = {}
        self.metadata_calls: list[str] = []
        self.metadata_error: Exception | None = None
        self.download_data = b"media-bytes"
        self.download_error: Exception | None = None
        self.downloads: list[MessageContent] = []
        self.read: list[MessageKey] = []
        self.resets: list[str] = []
        self.fail_send = False
        self.events_to_emit: list[Any] = []

    async def send_message(
        self,
        chat_id: str,
        payload: OutgoingPayload,
        *,
        quoted: InboundMessage | None = None,
    ) -> bool:
        await asyncio.sleep(0)
        if self.fail_send:
            raise ConnectionError("socket closed")
        self.sent.append((chat_id, payload, quoted))
        return True

    async def group_metadata(self, chat_id: str) -> GroupMetadata:
        self.metadata_calls.append(chat_id)
        if self.metadata_error is not None:
            raise self.metadata_error
        return self.metadata[chat_id]

    async def download_content(self, content: MessageContent) -> bytes:
        self.downloads.append(content)
        if self.download_error is not None:
            raise self.download_error
        return self.download_data

    async def read_messages(self, keys: Sequence[MessageKey]) -> None:
        self.read.extend(keys)

    async def reset_session(self, chat_id: str) -> None:
        self.resets.append(chat_id)

    async def events(self) -> AsyncIterator[Any]:
        for event in self.events_to_emit:
            yield event

    def texts(self) -> list[str]:
        return [payload.text or payload.caption or "" for _, payload, _ in self.sent]


def make_config(**overrides: Any) -> BotConfig:
    overrides.setdefault("owner_number", OWNER_NUMBER)
    return BotConfig(**overrides)


def text_content(text: str) -> MessageContent:
    return MessageContent(kind=ContentKind.TEXT, text=text)


def make_message(
    text: str | None,
    *,
    chat_id: str = USER,
    message_id: str = "MSG1",
    participant: str | None = None,
    from_me: bool = False,
    timestamp: float | None = None,
    content: MessageContent | None = None,
) -> InboundMessage:
    if content is None and text is not None:
        content = text_content(text)
    return InboundMessage(
        key=MessageKey(
            chat_id=chat_id,
            message_id=message_id,
            participant=participant,
            from_me=from_me,
        ),
        content=content,
        timestamp=timestamp,
    )


class ManualClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
