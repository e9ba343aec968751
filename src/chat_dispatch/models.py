"""Data models shared by the dispatcher, cache and recovery paths."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence, Union

from .utils import bare_jid, classify_chat

if TYPE_CHECKING:
    from .transport import TransportProtocol


class ChatKind(str, Enum):
    PRIVATE = "private"
    GROUP = "group"
    BROADCAST = "broadcast"
    NEWSLETTER = "newsletter"
    STATUS = "status"


class ContentKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


_CAPTIONED_KINDS = {ContentKind.IMAGE, ContentKind.VIDEO, ContentKind.DOCUMENT}


class Mode(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: str | None) -> "Mode | None":
        if value is None:
            return None
        normalized = value.strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        return None


class ModeCell:
    """Process-wide public/private switch shared by the router and ``mode`` command."""

    def __init__(self, mode: Mode = Mode.PUBLIC) -> None:
        self._mode = mode

    @property
    def mode(self) -> Mode:
        return self._mode

    def set(self, mode: Mode) -> None:
        self._mode = mode

    @property
    def is_private(self) -> bool:
        return self._mode is Mode.PRIVATE


@dataclass(frozen=True, slots=True)
class MessageKey:
    """Transport identity of a single message."""

    chat_id: str
    message_id: str
    participant: str | None = None
    from_me: bool = False

    @property
    def cache_key(self) -> tuple[str, str]:
        return (self.chat_id, self.message_id)

    @property
    def sender(self) -> str:
        return self.participant or self.chat_id


@dataclass(frozen=True, slots=True)
class MessageContent:
    """Tagged content payload; ``kind`` decides which fields are meaningful."""

    kind: ContentKind
    text: str | None = None
    caption: str | None = None
    mimetype: str | None = None
    file_name: str | None = None
    media_ref: Any = None

    @property
    def command_text(self) -> str | None:
        """Text that may carry a command, or ``None`` for variants that never do."""

        if self.kind is ContentKind.TEXT:
            return self.text or ""
        if self.kind in _CAPTIONED_KINDS:
            return self.caption or ""
        return None


@dataclass(slots=True)
class InboundMessage:
    """Message delivered by the transport."""

    key: MessageKey
    content: MessageContent | None
    timestamp: float | None = None
    push_name: str | None = None

    @property
    def chat_id(self) -> str:
        return self.key.chat_id

    @property
    def sender(self) -> str:
        return self.key.sender

    @property
    def chat_kind(self) -> ChatKind:
        return ChatKind(classify_chat(self.key.chat_id))

    @property
    def is_group(self) -> bool:
        return self.chat_kind is ChatKind.GROUP


@dataclass(slots=True)
class OutgoingPayload:
    """Content handed to ``TransportProtocol.send_message``."""

    kind: ContentKind = ContentKind.TEXT
    text: str | None = None
    data: bytes | None = None
    url: str | None = None
    caption: str | None = None
    mimetype: str | None = None
    file_name: str | None = None
    mentions: Sequence[str] = ()
    react: str | None = None
    react_to: MessageKey | None = None
    context_info: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def text_message(
        cls,
        text: str,
        *,
        mentions: Sequence[str] = (),
        context_info: Mapping[str, Any] | None = None,
    ) -> "OutgoingPayload":
        return cls(
            kind=ContentKind.TEXT,
            text=text,
            mentions=tuple(mentions),
            context_info=dict(context_info or {}),
        )

    @classmethod
    def reaction(cls, emoji: str, key: MessageKey) -> "OutgoingPayload":
        return cls(kind=ContentKind.TEXT, react=emoji, react_to=key)


@dataclass(frozen=True, slots=True)
class GroupParticipant:
    id: str
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() in {"admin", "superadmin"}


@dataclass(frozen=True, slots=True)
class GroupMetadata:
    id: str
    subject: str = ""
    participants: Sequence[GroupParticipant] = ()

    def find(self, jid: str) -> GroupParticipant | None:
        target = bare_jid(jid)
        for participant in self.participants:
            if bare_jid(participant.id) == target:
                return participant
        return None


@dataclass(frozen=True, slots=True)
class ConnectionOpened:
    """The transport finished connecting and is ready to send."""


@dataclass(frozen=True, slots=True)
class MessageBatch:
    messages: Sequence[InboundMessage]
    kind: str = "notify"


@dataclass(frozen=True, slots=True)
class MessageUpdate:
    """Partial update for a message; ``changes`` maps field name to new value."""

    key: MessageKey
    changes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def content_cleared(self) -> bool:
        return "content" in self.changes and self.changes["content"] is None


@dataclass(frozen=True, slots=True)
class MessageUpdateBatch:
    updates: Sequence[MessageUpdate]


@dataclass(frozen=True, slots=True)
class DeleteNotification:
    keys: Sequence[MessageKey]


TransportEvent = Union[
    ConnectionOpened, MessageBatch, MessageUpdateBatch, DeleteNotification
]


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Per-invocation view handed to a plugin's ``execute`` callback."""

    chat_id: str
    sender: str
    participant: str | None
    is_group: bool
    is_owner: bool
    args: tuple[str, ...]
    command: str
    prefix: str
    text: str
    reply_context: Mapping[str, Any]
    message: InboundMessage
    transport: "TransportProtocol"

    async def reply(self, text: str, *, quote: bool = True) -> bool:
        payload = OutgoingPayload.text_message(text, context_info=self.reply_context)
        return await self.transport.send_message(
            self.chat_id, payload, quoted=self.message if quote else None
        )

    async def send(self, payload: OutgoingPayload, *, quote: bool = True) -> bool:
        return await self.transport.send_message(
            self.chat_id, payload, quoted=self.message if quote else None
        )
