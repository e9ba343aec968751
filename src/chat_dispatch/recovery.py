"""Re-emit the content of messages that their senders deleted."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from .cache import MessageCache, MessageStore
from .formatting import (
    format_delete_alert,
    format_recovered_notice,
    format_unsupported,
    join_caption,
)
from .models import ContentKind, MessageContent, MessageKey, MessageUpdate, OutgoingPayload
from .transport import TransportProtocol, safe_send
from .utils import bare_jid, is_group_jid, is_status_jid, jid_user

logger = logging.getLogger(__name__)

_DEFAULT_DOCUMENT_NAME = "Restored-File"


@dataclass(slots=True)
class RecoveryOptions:
    """Toggles for the explicit-delete path."""

    owner_jid: str
    recover_group: bool = True
    recover_private: bool = True
    send_to_original: bool = False


class DeleteRecoveryHandler:
    """React to the two ways the transport reports deleted messages.

    Content-cleared updates are resolved against the short-lived
    :class:`MessageCache` and reported to the local account; explicit delete
    notifications are resolved against a longer-lived :class:`MessageStore`
    and reported to the owner or back to the original chat. Every message is
    handled on its own: a failure is logged and the rest of the batch
    continues.
    """

    def __init__(
        self,
        transport: TransportProtocol,
        cache: MessageCache,
        store: MessageStore,
        options: RecoveryOptions,
        *,
        reply_context: Mapping[str, Any] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._cache = cache
        self._store = store
        self._options = options
        self._reply_context = dict(reply_context or {})
        self._clock = clock

    # ------------------------------------------------------------------
    # Content replaced by an explicit absence
    # ------------------------------------------------------------------
    async def handle_updates(self, updates: Sequence[MessageUpdate]) -> int:
        """Recover every content-cleared update; return how many were re-sent."""

        recovered = 0
        for update in updates:
            try:
                if await self._recover_update(update):
                    recovered += 1
            except Exception:
                logger.exception(
                    "Recovery of %s in %s failed", update.key.message_id, update.key.chat_id
                )
        return recovered

    async def _recover_update(self, update: MessageUpdate) -> bool:
        key = update.key
        if is_status_jid(key.chat_id) or key.from_me or not update.content_cleared:
            return False

        content = self._cache.lookup(key, now=self._clock())
        if content is None:
            logger.warning(
                "Deleted message %s in %s is not cached, nothing to recover",
                key.message_id,
                key.chat_id,
            )
            return False

        owner = bare_jid(getattr(self._transport, "user_id", None))
        if not owner:
            logger.warning("Cannot recover %s: local account id unknown", key.message_id)
            return False

        if content.kind is ContentKind.TEXT:
            payload = OutgoingPayload.text_message(
                content.text or "", context_info=self._reply_context
            )
        else:
            data = await self._download(content)
            if data is None:
                return False
            payload = OutgoingPayload(
                kind=content.kind,
                data=data,
                caption=content.caption,
                mimetype=content.mimetype,
                file_name=content.file_name,
                context_info=self._reply_context,
            )

        await safe_send(
            self._transport,
            owner,
            OutgoingPayload.text_message(
                format_recovered_notice(key.sender), context_info=self._reply_context
            ),
        )
        sent = await safe_send(self._transport, owner, payload)
        if sent:
            logger.info("Recovered deleted message %s from %s", key.message_id, key.sender)
        return sent

    # ------------------------------------------------------------------
    # Explicit delete notifications
    # ------------------------------------------------------------------
    async def handle_deletes(self, keys: Sequence[MessageKey]) -> int:
        """Restore every deleted key allowed by the toggles; return how many were re-sent."""

        restored = 0
        for key in keys:
            try:
                if await self._restore_deleted(key):
                    restored += 1
            except Exception:
                logger.exception(
                    "Anti-delete for %s in %s failed", key.message_id, key.chat_id
                )
        return restored

    def _enabled_for(self, chat_id: str) -> bool:
        if is_group_jid(chat_id):
            return self._options.recover_group
        return self._options.recover_private

    async def _restore_deleted(self, key: MessageKey) -> bool:
        is_group = is_group_jid(key.chat_id)
        if not self._enabled_for(key.chat_id):
            logger.debug("Anti-delete disabled for %s chats", "group" if is_group else "private")
            return False

        content = await self._store.load_message(key.chat_id, key.message_id)
        if content is None:
            logger.warning("No stored message found for %s", key.message_id)
            return False

        sender = key.sender
        sender_name = jid_user(sender)
        target = key.chat_id if self._options.send_to_original else self._options.owner_jid
        header = format_delete_alert(sender_name, is_group=is_group)
        payloads = await self._restored_payloads(content, header, sender)
        if not payloads:
            return False

        sent = True
        for payload in payloads:
            sent = await safe_send(self._transport, target, payload) and sent
        if sent:
            logger.info("Restored deleted message from %s", sender_name)
        return sent

    async def _restored_payloads(
        self, content: MessageContent, header: str, sender: str
    ) -> list[OutgoingPayload]:
        mentions = (sender,)
        kind = content.kind
        if kind is ContentKind.TEXT:
            return [
                OutgoingPayload.text_message(
                    join_caption(header, content.text), mentions=mentions
                )
            ]
        if kind in (ContentKind.IMAGE, ContentKind.VIDEO, ContentKind.AUDIO, ContentKind.DOCUMENT):
            data = await self._download(content)
            if data is None:
                return []
            if kind is ContentKind.DOCUMENT:
                return [
                    OutgoingPayload(
                        kind=kind,
                        data=data,
                        caption=header,
                        mimetype=content.mimetype,
                        file_name=content.file_name or _DEFAULT_DOCUMENT_NAME,
                        mentions=mentions,
                    )
                ]
            if kind is ContentKind.AUDIO:
                # Audio carries no caption; the alert goes first as text.
                return [
                    OutgoingPayload.text_message(header, mentions=mentions),
                    OutgoingPayload(
                        kind=kind, data=data, mimetype=content.mimetype, mentions=mentions
                    ),
                ]
            return [
                OutgoingPayload(
                    kind=kind,
                    data=data,
                    caption=join_caption(header, content.caption),
                    mimetype=content.mimetype,
                    mentions=mentions,
                )
            ]
        return [
            OutgoingPayload.text_message(
                join_caption(header, format_unsupported(kind)), mentions=mentions
            )
        ]

    async def _download(self, content: MessageContent) -> bytes | None:
        try:
            return await self._transport.download_content(content)
        except Exception as exc:
            logger.warning("Download of deleted %s failed: %s", content.kind.value, exc)
            return None
