"""Contract of the real-time messaging transport the dispatcher runs on."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol, Sequence

from .models import (
    GroupMetadata,
    InboundMessage,
    MessageContent,
    MessageKey,
    OutgoingPayload,
    TransportEvent,
)

logger = logging.getLogger(__name__)


class TransportProtocol(Protocol):
    user_id: str | None

    async def send_message(
        self,
        chat_id: str,
        payload: OutgoingPayload,
        *,
        quoted: InboundMessage | None = None,
    ) -> bool: ...

    async def group_metadata(self, chat_id: str) -> GroupMetadata: ...

    async def download_content(self, content: MessageContent) -> bytes: ...

    async def read_messages(self, keys: Sequence[MessageKey]) -> None: ...

    async def reset_session(self, chat_id: str) -> None: ...

    def events(self) -> AsyncIterator[TransportEvent]: ...


async def safe_send(
    transport: TransportProtocol,
    chat_id: str,
    payload: OutgoingPayload,
    *,
    quoted: InboundMessage | None = None,
) -> bool:
    """Send ``payload`` and turn transport failures into ``False``."""

    try:
        return bool(await transport.send_message(chat_id, payload, quoted=quoted))
    except Exception:
        logger.warning("Failed to send message to %s", chat_id, exc_info=True)
        return False
