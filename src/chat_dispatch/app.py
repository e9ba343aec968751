"""Application wiring: transport events in, commands and recoveries out."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from .bundled import BUNDLED_PLUGIN_DIR
from .cache import MessageCache, MessageStore
from .config import BotConfig
from .formatting import format_startup_notice
from .models import (
    ChatKind,
    ConnectionOpened,
    DeleteNotification,
    InboundMessage,
    MessageBatch,
    MessageUpdateBatch,
    ModeCell,
    OutgoingPayload,
    TransportEvent,
)
from .recovery import DeleteRecoveryHandler, RecoveryOptions
from .registry import (
    CombinedPluginSource,
    DirectoryPluginSource,
    PluginDefinitionSource,
    PluginRegistry,
)
from .router import CommandRouter
from .status import StatusResponder
from .transport import TransportProtocol, safe_send
from .utils import bare_jid

logger = logging.getLogger(__name__)

_REALTIME_BATCH_KINDS = {"notify", "append"}


class ChatDispatchApp:
    """High level coordinator tying the transport to the router and recovery."""

    def __init__(
        self,
        config: BotConfig,
        transport: TransportProtocol,
        *,
        plugin_source: PluginDefinitionSource | None = None,
        store: MessageStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._transport = transport
        self._clock = clock
        self._started_at = clock()
        self._mode = ModeCell(config.mode)
        self._registry = PluginRegistry()
        self._plugin_source = plugin_source or CombinedPluginSource(
            [
                DirectoryPluginSource(BUNDLED_PLUGIN_DIR, create=False),
                DirectoryPluginSource(config.plugin_dir),
            ]
        )
        self._cache = MessageCache(config.cache_retention, clock=clock)
        # Without an external store, explicit deletes are served from a longer-lived cache.
        self._store_cache: MessageCache | None = None
        if store is None:
            self._store_cache = MessageCache(config.store_retention, clock=clock)
            store = self._store_cache
        self._store = store
        self._router = CommandRouter(
            transport, self._registry, self._mode, config, clock=clock
        )
        self._recovery = DeleteRecoveryHandler(
            transport,
            self._cache,
            self._store,
            RecoveryOptions(
                owner_jid=config.owner_jid,
                recover_group=config.antidelete_group,
                recover_private=config.antidelete_private,
                send_to_original=config.antidelete_send_to_original,
            ),
            reply_context=config.reply_context,
            clock=clock,
        )
        self._status = StatusResponder(transport, config)

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def router(self) -> CommandRouter:
        return self._router

    @property
    def cache(self) -> MessageCache:
        return self._cache

    @property
    def mode(self) -> ModeCell:
        return self._mode

    def reload_plugins(self) -> int:
        return self._registry.load(self._plugin_source)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------
    async def handle_event(self, event: TransportEvent) -> None:
        if isinstance(event, MessageBatch):
            await self.on_messages(event)
        elif isinstance(event, MessageUpdateBatch):
            await self._recovery.handle_updates(event.updates)
        elif isinstance(event, DeleteNotification):
            logger.debug("Delete notification for %d message(s)", len(event.keys))
            await self._recovery.handle_deletes(event.keys)
        elif isinstance(event, ConnectionOpened):
            await self.on_connection_open()
        else:
            logger.debug("Ignoring transport event %r", event)

    async def on_connection_open(self) -> None:
        logger.info("Connected, loading plugins")
        count = await asyncio.to_thread(self.reload_plugins)
        await self._send_startup_notice(count)

    async def on_messages(self, batch: MessageBatch) -> None:
        # Recording happens for every batch kind, dispatch only for live traffic.
        for message in batch.messages:
            self._remember(message)

        if batch.kind not in _REALTIME_BATCH_KINDS:
            logger.debug("Skipping %s batch of %d message(s)", batch.kind, len(batch.messages))
            return

        for message in batch.messages:
            try:
                await self._route(message)
            except Exception:
                logger.exception("Failed to process message %s", message.key.message_id)

    def _remember(self, message: InboundMessage) -> None:
        if message.content is None or not message.key.message_id:
            return
        if message.chat_kind is ChatKind.STATUS:
            return
        now = self._clock()
        self._cache.record(message.key, message.content, now)
        if self._store_cache is not None:
            self._store_cache.record(message.key, message.content, now)

    async def _route(self, message: InboundMessage) -> None:
        kind = message.chat_kind
        if kind is ChatKind.STATUS:
            await self._status.handle_status(message)
            return
        if message.content is None:
            return
        logger.debug("New %s message from %s", kind.value, message.chat_id)
        if kind is ChatKind.NEWSLETTER:
            await self._status.handle_newsletter(message)
        self._router.submit(message)

    async def _send_startup_notice(self, plugin_count: int) -> None:
        target = bare_jid(getattr(self._transport, "user_id", None))
        if not target:
            return
        text = format_startup_notice(
            bot_name=self._config.bot_name,
            prefix=self._config.prefix,
            mode=self._mode.mode,
            plugin_count=plugin_count,
            config_rows=self._config.summary_rows(),
            description=self._config.description,
        )
        payload = OutgoingPayload.text_message(text, context_info=self._config.reply_context)
        if await safe_send(self._transport, target, payload):
            return
        logger.warning("Startup notice failed, sending a short one")
        fallback = OutgoingPayload.text_message(
            f"✅ {self._config.bot_name} is now online!\nPrefix: {self._config.prefix}"
        )
        await safe_send(self._transport, target, fallback)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    async def run(self, *, host: str = "0.0.0.0") -> None:
        runner = web.AppRunner(self.build_health_app())
        await runner.setup()
        site = web.TCPSite(runner, host, self._config.port)
        await site.start()
        logger.info("Health endpoint listening on port %d", self._config.port)
        try:
            await self._supervise("transport-events", self._consume_events)
        finally:
            await runner.cleanup()

    async def _consume_events(self) -> None:
        async for event in self._transport.events():
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Failed to handle %s", type(event).__name__)

    async def _supervise(
        self,
        name: str,
        factory: Callable[[], Awaitable[None]],
        *,
        retry_delay: float = 5.0,
    ) -> None:
        while True:
            try:
                await factory()
            except asyncio.CancelledError:
                logger.info("Task %s stopped", name)
                raise
            except Exception:
                logger.exception("Task %s crashed", name)
            else:
                logger.warning("Task %s ended unexpectedly, restarting", name)
            await asyncio.sleep(retry_delay)

    # ------------------------------------------------------------------
    # Health endpoint
    # ------------------------------------------------------------------
    def build_health_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/health", self._handle_health)
        return app

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text=f"✅ {self._config.bot_name} is Running!")

    async def _handle_index(self, request: web.Request) -> web.Response:
        payload: dict[str, Any] = {
            "name": self._config.bot_name,
            "mode": self._mode.mode.value,
            "prefix": self._config.prefix,
            "plugins": len(self._registry),
            "cached_messages": len(self._cache),
            "pending_commands": self._router.pending,
            "uptime_seconds": round(max(0.0, self._clock() - self._started_at), 1),
        }
        return web.json_response(payload)
