from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp.test_utils import TestClient, TestServer

from chat_dispatch.app import ChatDispatchApp
from chat_dispatch.models import (
    ConnectionOpened,
    DeleteNotification,
    ExecutionContext,
    MessageBatch,
    MessageUpdate,
    MessageUpdateBatch,
    Mode,
)
from chat_dispatch.registry import StaticPluginSource

from transport_fixtures import (
    BOT,
    GROUP,
    OWNER,
    USER,
    DummyTransport,
    ManualClock,
    make_config,
    make_message,
)


def _app(
    transport: DummyTransport,
    *,
    handlers: list[dict[str, object]] | None = None,
    clock: ManualClock | None = None,
    **config_overrides: object,
) -> ChatDispatchApp:
    return ChatDispatchApp(
        make_config(**config_overrides),
        transport,
        plugin_source=StaticPluginSource(handlers or []),
        clock=clock or ManualClock(100.0),
    )


def test_message_batch_is_recorded_and_dispatched() -> None:
    async def runner() -> None:
        calls: list[tuple[str, ...]] = []

        async def execute(ctx: ExecutionContext) -> None:
            calls.append(ctx.args)
            await ctx.reply("ok")

        transport = DummyTransport()
        app = _app(transport, handlers=[{"command": "echo", "execute": execute}])
        assert app.reload_plugins() == 1

        message = make_message(".echo hi there", message_id="E1")
        await app.handle_event(MessageBatch(messages=[message]))
        await app.router.drain()

        assert calls == [("hi", "there")]
        assert transport.texts() == ["ok"]
        assert app.cache.lookup(message.key) is message.content

    asyncio.run(runner())


def test_history_batch_is_recorded_but_not_dispatched() -> None:
    async def runner() -> None:
        transport = DummyTransport()
        app = _app(transport)
        message = make_message(".ping", message_id="H1")

        await app.handle_event(MessageBatch(messages=[message], kind="history"))

        assert app.router.pending == 0
        assert transport.sent == []
        assert message.key in app.cache

    asyncio.run(runner())


def test_status_posts_go_to_responder_and_are_not_cached() -> None:
    async def runner() -> None:
        transport = DummyTransport()
        app = _app(
            transport,
            auto_status_seen=True,
            auto_status_react=True,
            react_emojis=("🔥",),
        )
        status = make_message(
            "my day", chat_id="status@broadcast", participant=USER, message_id="S1"
        )

        await app.handle_event(MessageBatch(messages=[status]))
        await app.router.drain()

        assert transport.read == [status.key]
        assert len(transport.sent) == 1
        chat_id, payload, _ = transport.sent[0]
        assert chat_id == USER
        assert payload.react == "🔥"
        assert len(app.cache) == 0

    asyncio.run(runner())


def test_newsletter_message_gets_reaction() -> None:
    async def runner() -> None:
        transport = DummyTransport()
        app = _app(transport, auto_react_newsletter=True)
        post = make_message("news", chat_id="120363@newsletter", message_id="N1")

        await app.handle_event(MessageBatch(messages=[post]))
        await app.router.drain()

        assert len(transport.sent) == 1
        chat_id, payload, _ = transport.sent[0]
        assert chat_id == "120363@newsletter"
        assert payload.react is not None
        assert payload.react_to == post.key

    asyncio.run(runner())


def test_connection_open_loads_bundled_plugins_and_announces(tmp_path: Path) -> None:
    async def runner() -> None:
        transport = DummyTransport()
        app = ChatDispatchApp(
            make_config(plugin_dir=tmp_path / "plugins", mode=Mode.PRIVATE),
            transport,
            clock=ManualClock(0.0),
        )

        await app.handle_event(ConnectionOpened())

        assert "demo" in app.registry
        assert "test" in app.registry
        assert (tmp_path / "plugins").is_dir()
        assert [chat for chat, _, _ in transport.sent] == [BOT]
        notice = transport.texts()[0]
        assert "is now active" in notice
        assert "*Plugins Loaded:* 1" in notice
        assert "MODE" in notice

        await app.handle_event(
            MessageBatch(messages=[make_message(".test hi", chat_id=OWNER, message_id="T1")])
        )
        await app.router.drain()
        assert transport.texts()[-1].startswith("✅ *Test Command Executed Successfully!*")
        assert "*Arguments:* hi" in transport.texts()[-1]

    asyncio.run(runner())


async def _noop(ctx: ExecutionContext) -> None:
    return None


def test_deleted_message_recovery_uses_both_tiers() -> None:
    async def runner() -> None:
        clock = ManualClock(0.0)
        transport = DummyTransport()
        app = _app(transport, clock=clock)
        message = make_message(
            "hello", chat_id=GROUP, participant=USER, message_id="G1"
        )
        await app.handle_event(MessageBatch(messages=[message]))
        await app.router.drain()

        clock.advance(2 * 60 * 60)
        await app.handle_event(
            MessageUpdateBatch(
                updates=[MessageUpdate(key=message.key, changes={"content": None})]
            )
        )
        assert transport.sent == []

        await app.handle_event(DeleteNotification(keys=[message.key]))
        assert len(transport.sent) == 1
        chat_id, payload, _ = transport.sent[0]
        assert chat_id == OWNER
        assert payload.text.endswith("hello")
        assert payload.mentions == (USER,)

    asyncio.run(runner())


def test_health_endpoints_report_state() -> None:
    async def runner() -> None:
        clock = ManualClock(100.0)
        transport = DummyTransport()
        app = _app(
            transport,
            handlers=[{"command": "echo", "execute": _noop}],
            clock=clock,
            bot_name="Nexus",
        )
        app.reload_plugins()
        clock.advance(42)

        async with TestClient(TestServer(app.build_health_app())) as client:
            response = await client.get("/health")
            assert response.status == 200
            assert await response.text() == "✅ Nexus is Running!"

            response = await client.get("/")
            data = await response.json()

        assert data == {
            "name": "Nexus",
            "mode": "public",
            "prefix": ".",
            "plugins": 1,
            "cached_messages": 0,
            "pending_commands": 0,
            "uptime_seconds": 42.0,
        }

    asyncio.run(runner())
