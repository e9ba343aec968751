"""Automatic reactions to status posts and newsletter messages."""

from __future__ import annotations

import logging
import random
from typing import Sequence

from .config import BotConfig
from .formatting import format_saved_status, format_saved_text_status
from .models import ContentKind, InboundMessage, MessageKey, OutgoingPayload
from .transport import TransportProtocol
from .utils import bare_jid, jid_user

logger = logging.getLogger(__name__)

NEWSLETTER_EMOJIS: tuple[str, ...] = ("🤖", "🔥", "💫", "❤️", "👍", "💯", "✨", "👏", "😎")
_SAVED_MEDIA_KINDS = {ContentKind.IMAGE, ContentKind.VIDEO, ContentKind.AUDIO}


class StatusResponder:
    """Mark, save, react to and answer status posts according to configuration."""

    def __init__(
        self,
        transport: TransportProtocol,
        config: BotConfig,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._rng = rng or random.Random()

    def _pick(self, emojis: Sequence[str]) -> str:
        return self._rng.choice(list(emojis))

    async def handle_status(self, message: InboundMessage) -> list[str]:
        """Run the enabled status actions; return the names of those that succeeded."""

        key = message.key
        author = key.participant
        done: list[str] = []
        logger.debug("Status update from %s: %s", author, key.message_id)

        if self._config.auto_status_seen:
            try:
                await self._transport.read_messages([key])
            except Exception as exc:
                logger.warning("Status seen failed: %s", exc)
            else:
                done.append("seen")

        if self._config.status_saver:
            try:
                saved = await self._save_status(message)
            except Exception as exc:
                logger.warning("Status save failed: %s", exc)
            else:
                if saved:
                    logger.info("Status saved: %s", key.message_id)
                    done.append("save")

        if not author:
            return done

        if self._config.auto_status_react:
            emoji = self._pick(self._config.react_emojis)
            reaction_key = MessageKey(
                chat_id=key.chat_id, message_id=key.message_id, participant=author
            )
            try:
                await self._transport.send_message(
                    author, OutgoingPayload.reaction(emoji, reaction_key)
                )
            except Exception as exc:
                logger.warning("Status reaction failed: %s", exc)
            else:
                logger.info("Reacted on status %s with %s", key.message_id, emoji)
                done.append("react")

        if self._config.auto_status_reply:
            try:
                await self._transport.send_message(
                    author,
                    OutgoingPayload.text_message(self._config.auto_status_message),
                    quoted=message,
                )
            except Exception as exc:
                logger.warning("Status reply failed: %s", exc)
            else:
                done.append("reply")
        return done

    async def _save_status(self, message: InboundMessage) -> bool:
        """Forward a status post to the local account; ``False`` when there is nothing to save."""

        content = message.content
        target = bare_jid(getattr(self._transport, "user_id", None))
        if content is None or not target:
            return False

        if content.kind is ContentKind.TEXT:
            payloads = [OutgoingPayload.text_message(format_saved_text_status(content.text))]
        elif content.kind in _SAVED_MEDIA_KINDS:
            data = await self._transport.download_content(content)
            author = message.push_name or jid_user(message.key.participant) or "Unknown"
            if content.kind is ContentKind.AUDIO:
                payloads = [
                    OutgoingPayload.text_message(format_saved_status(author, is_audio=True)),
                    OutgoingPayload(kind=content.kind, data=data, mimetype=content.mimetype),
                ]
            else:
                payloads = [
                    OutgoingPayload(
                        kind=content.kind,
                        data=data,
                        caption=format_saved_status(author, caption=content.caption),
                        mimetype=content.mimetype,
                    )
                ]
        else:
            logger.warning("Unsupported status type: %s", content.kind.value)
            return False

        for payload in payloads:
            await self._transport.send_message(target, payload)
        return True

    async def handle_newsletter(self, message: InboundMessage) -> bool:
        if not self._config.auto_react_newsletter:
            return False
        emoji = self._pick(NEWSLETTER_EMOJIS)
        try:
            await self._transport.send_message(
                message.chat_id, OutgoingPayload.reaction(emoji, message.key)
            )
        except Exception:
            logger.exception("Newsletter react failed for %s", message.chat_id)
            return False
        return True
