"""Permission gate evaluated before a plugin command runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .models import GroupMetadata
from .registry import PluginRequirements
from .transport import TransportProtocol
from .utils import bare_jid

logger = logging.getLogger(__name__)


class Refusal(str, Enum):
    OWNER = "owner"
    GROUP = "group"
    ADMIN = "admin"
    BOT_ADMIN = "bot_admin"
    UNVERIFIED = "unverified"


REFUSAL_MESSAGES: dict[Refusal, str] = {
    Refusal.OWNER: "👑 Owner only command",
    Refusal.GROUP: "👥 Group only command",
    Refusal.ADMIN: "👮 Admin required",
    Refusal.BOT_ADMIN: "🤖 Bot needs admin rights",
    Refusal.UNVERIFIED: "⚠️ Could not verify admin rights, try again later",
}


@dataclass(frozen=True, slots=True)
class PermissionDecision:
    allowed: bool
    refusal: Refusal | None = None

    @property
    def message(self) -> str | None:
        if self.refusal is None:
            return None
        return REFUSAL_MESSAGES[self.refusal]


ALLOWED = PermissionDecision(allowed=True)


@dataclass(frozen=True, slots=True)
class GateSubject:
    """Who is asking, and where."""

    chat_id: str
    sender: str
    is_group: bool
    is_owner: bool


class PermissionGate:
    """Check owner, group, admin and bot-admin requirements in that order.

    Local checks run first; the admin checks need a group metadata round trip
    and share a single query per evaluation. The first failing check decides
    the refusal.
    """

    def __init__(self, transport: TransportProtocol) -> None:
        self._transport = transport

    async def evaluate(
        self, requirements: PluginRequirements, subject: GateSubject
    ) -> PermissionDecision:
        if requirements.owner and not subject.is_owner:
            return PermissionDecision(False, Refusal.OWNER)
        if requirements.group and not subject.is_group:
            return PermissionDecision(False, Refusal.GROUP)

        needs_membership = subject.is_group and (requirements.admin or requirements.bot_admin)
        if not needs_membership:
            return ALLOWED

        try:
            metadata = await self._transport.group_metadata(subject.chat_id)
        except Exception as exc:
            logger.warning(
                "Admin check for %s in %s could not complete: %s",
                subject.sender,
                subject.chat_id,
                exc,
            )
            return PermissionDecision(False, Refusal.UNVERIFIED)

        if requirements.admin and not _is_admin(metadata, subject.sender):
            return PermissionDecision(False, Refusal.ADMIN)
        if requirements.bot_admin:
            bot_id = bare_jid(getattr(self._transport, "user_id", None))
            if not bot_id:
                logger.warning("Bot admin check in %s without a local account id", subject.chat_id)
                return PermissionDecision(False, Refusal.UNVERIFIED)
            if not _is_admin(metadata, bot_id):
                return PermissionDecision(False, Refusal.BOT_ADMIN)
        return ALLOWED


def _is_admin(metadata: GroupMetadata, jid: str) -> bool:
    participant = metadata.find(jid)
    return participant is not None and participant.is_admin
