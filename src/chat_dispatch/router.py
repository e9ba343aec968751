"""Command router: turns inbound messages into plugin or built-in invocations."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from .config import BotConfig
from .formatting import (
    CORE_COMMANDS,
    format_menu,
    format_mode_changed,
    format_mode_usage,
    format_pong,
)
from .models import ContentKind, ExecutionContext, InboundMessage, Mode, ModeCell, OutgoingPayload
from .permissions import GateSubject, PermissionGate
from .registry import PluginRegistry
from .transport import TransportProtocol, safe_send
from .utils import ChatGuard, format_latency, same_user

logger = logging.getLogger(__name__)

_OWNER_ONLY_TEXT = "❌ Owner only command!"


class DispatchOutcome(str, Enum):
    NOT_COMMAND = "not_command"
    DROPPED = "dropped"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def parse_command(text: str, prefix: str) -> tuple[str, tuple[str, ...], str] | None:
    """Split ``text`` into ``(command, args, command_text)`` or return ``None``.

    ``command`` is case-folded; ``command_text`` is everything after the
    prefix with surrounding whitespace removed.
    """

    if not prefix or not text.startswith(prefix):
        return None
    command_text = text[len(prefix) :].strip()
    tokens = command_text.split()
    if not tokens:
        return None
    return tokens[0].casefold(), tuple(tokens[1:]), command_text


BuiltinHandler = Callable[[ExecutionContext], Awaitable["DispatchOutcome | None"]]


class CommandRouter:
    """Route prefixed messages to built-in commands or registered plugins.

    A message passes through prefix detection, the mode check, lookup, the
    permission gate and execution, stopping at the first terminal outcome.
    """

    def __init__(
        self,
        transport: TransportProtocol,
        registry: PluginRegistry,
        mode: ModeCell,
        config: BotConfig,
        *,
        gate: PermissionGate | None = None,
        guard: ChatGuard | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._mode = mode
        self._config = config
        self._gate = gate or PermissionGate(transport)
        self._guard = guard or ChatGuard()
        self._clock = clock
        self._tasks: set[asyncio.Task[DispatchOutcome]] = set()

    @property
    def prefix(self) -> str:
        return self._config.prefix

    def is_owner(self, message: InboundMessage) -> bool:
        return message.key.from_me or same_user(message.sender, self._config.owner_jid)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def submit(self, message: InboundMessage) -> asyncio.Task[DispatchOutcome]:
        """Dispatch ``message`` in its own task, ordered per chat."""

        task = asyncio.create_task(
            self._dispatch_guarded(message),
            name=f"dispatch-{message.key.chat_id}-{message.key.message_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every command dispatched through :meth:`submit`."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _dispatch_guarded(self, message: InboundMessage) -> DispatchOutcome:
        async with self._guard.lock(message.key.chat_id):
            try:
                return await self.dispatch(message)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Dispatch of message %s in %s crashed",
                    message.key.message_id,
                    message.key.chat_id,
                )
                return DispatchOutcome.FAILED

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def dispatch(self, message: InboundMessage) -> DispatchOutcome:
        content = message.content
        text = content.command_text if content is not None else None
        if text is None:
            return DispatchOutcome.NOT_COMMAND

        parsed = parse_command(text, self.prefix)
        if parsed is None:
            logger.debug("Message %s is not a command", message.key.message_id)
            return DispatchOutcome.NOT_COMMAND
        command, args, command_text = parsed

        is_owner = self.is_owner(message)
        if self._mode.is_private and not is_owner:
            logger.debug("Private mode: ignoring %s from %s", command, message.sender)
            return DispatchOutcome.DROPPED

        logger.debug("Detected command %s | args: %s", command, " ".join(args))
        if self._config.read_commands:
            await self._mark_read(message)

        ctx = ExecutionContext(
            chat_id=message.chat_id,
            sender=message.sender,
            participant=message.key.participant,
            is_group=message.is_group,
            is_owner=is_owner,
            args=args,
            command=command,
            prefix=self.prefix,
            text=command_text,
            reply_context=self._config.reply_context,
            message=message,
            transport=self._transport,
        )

        if command in CORE_COMMANDS:
            handler: BuiltinHandler = getattr(self, f"cmd_{command}")
            return await self._execute(command, "<builtin>", handler, ctx)

        descriptor = self._registry.lookup(command)
        if descriptor is None:
            logger.info("Command not found: %s", command)
            return DispatchOutcome.NOT_FOUND

        decision = await self._gate.evaluate(
            descriptor.requirements,
            GateSubject(
                chat_id=ctx.chat_id,
                sender=ctx.sender,
                is_group=ctx.is_group,
                is_owner=is_owner,
            ),
        )
        if not decision.allowed:
            logger.debug(
                "Command %s refused for %s: %s", command, ctx.sender, decision.refusal
            )
            await self._reply(ctx, decision.message or "")
            return DispatchOutcome.REJECTED

        return await self._execute(command, descriptor.origin, descriptor.execute, ctx)

    async def _execute(
        self,
        command: str,
        origin: str,
        handler: Callable[[ExecutionContext], Awaitable[object]],
        ctx: ExecutionContext,
    ) -> DispatchOutcome:
        try:
            result = await handler(ctx)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Command %s from %s failed", command, origin)
            await self._reply(ctx, f'❌ Command "{command}" failed.')
            return DispatchOutcome.FAILED
        if isinstance(result, DispatchOutcome):
            return result
        logger.info("Executed command %s for %s", command, ctx.sender)
        return DispatchOutcome.SUCCEEDED

    async def _reply(self, ctx: ExecutionContext, text: str) -> bool:
        payload = OutgoingPayload.text_message(text, context_info=ctx.reply_context)
        return await safe_send(self._transport, ctx.chat_id, payload, quoted=ctx.message)

    async def _mark_read(self, message: InboundMessage) -> None:
        try:
            await self._transport.read_messages([message.key])
        except Exception as exc:
            logger.debug("Could not mark %s read: %s", message.key.message_id, exc)

    # ------------------------------------------------------------------
    # Built-in commands
    # ------------------------------------------------------------------
    async def cmd_ping(self, ctx: ExecutionContext) -> None:
        latency = format_latency(ctx.message.timestamp, self._clock())
        await ctx.reply(format_pong(latency, self._config.bot_name))

    async def cmd_mode(self, ctx: ExecutionContext) -> DispatchOutcome | None:
        if not ctx.is_owner:
            await ctx.reply(_OWNER_ONLY_TEXT)
            return DispatchOutcome.REJECTED
        requested = Mode.parse(ctx.args[0]) if ctx.args else None
        if requested is None:
            await ctx.reply(format_mode_usage(self._mode.mode, ctx.prefix))
            return None
        self._mode.set(requested)
        logger.info("Mode changed to %s by %s", requested.value, ctx.sender)
        await ctx.reply(format_mode_changed(requested))
        return None

    async def cmd_resetsession(self, ctx: ExecutionContext) -> DispatchOutcome | None:
        if not ctx.is_owner:
            await ctx.reply(_OWNER_ONLY_TEXT)
            return DispatchOutcome.REJECTED
        if ctx.is_group:
            await self._transport.reset_session(ctx.chat_id)
            await ctx.reply("✅ Group session reset initiated!")
        else:
            await ctx.reply("✅ Session reset!")
        return None

    async def cmd_alive(self, ctx: ExecutionContext) -> None:
        if self._config.alive_image:
            await ctx.send(
                OutgoingPayload(
                    kind=ContentKind.IMAGE,
                    url=self._config.alive_image,
                    caption=self._config.live_message,
                    context_info=ctx.reply_context,
                )
            )
            return
        await ctx.reply(self._config.live_message)

    async def cmd_menu(self, ctx: ExecutionContext) -> None:
        text = format_menu(
            self._registry.list(),
            prefix=ctx.prefix,
            mode=self._mode.mode,
            bot_name=self._config.bot_name,
            description=self._config.description,
        )
        if self._config.alive_image:
            await ctx.send(
                OutgoingPayload(
                    kind=ContentKind.IMAGE,
                    url=self._config.alive_image,
                    caption=text,
                    context_info=ctx.reply_context,
                )
            )
            return
        await ctx.reply(text)
