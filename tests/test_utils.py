import asyncio

from chat_dispatch.utils import (
    ChatGuard,
    bare_jid,
    classify_chat,
    format_latency,
    jid_user,
    parse_bool,
    parse_seconds,
    same_user,
    user_jid,
)


def test_parse_bool_supports_truthy_and_falsy() -> None:
    assert parse_bool("on") is True
    assert parse_bool("NO") is False
    assert parse_bool(None, default=True) is True
    assert parse_bool("unexpected", default=False) is False


def test_parse_seconds_falls_back_on_invalid_values() -> None:
    assert parse_seconds("1.5", 10.0) == 1.5
    assert parse_seconds("later", 10.0) == 10.0
    assert parse_seconds("0", 10.0) == 10.0
    assert parse_seconds(None, 10.0) == 10.0


def test_jid_helpers() -> None:
    assert bare_jid("999:7@s.whatsapp.net") == "999@s.whatsapp.net"
    assert bare_jid(None) == ""
    assert user_jid("+1000") == "1000@s.whatsapp.net"
    assert user_jid("1000:3@s.whatsapp.net") == "1000@s.whatsapp.net"
    assert user_jid("  ") is None
    assert jid_user("1000:3@s.whatsapp.net") == "1000"
    assert same_user("1000:3@s.whatsapp.net", "1000@s.whatsapp.net")
    assert not same_user(None, "1000@s.whatsapp.net")


def test_classify_chat() -> None:
    assert classify_chat("12345-678@g.us") == "group"
    assert classify_chat("status@broadcast") == "status"
    assert classify_chat("1@broadcast") == "broadcast"
    assert classify_chat("120363@newsletter") == "newsletter"
    assert classify_chat("1000@s.whatsapp.net") == "private"


def test_format_latency_is_never_negative() -> None:
    assert format_latency(10.0, 10.1234) == 123
    assert format_latency(10.0, 9.0) == 0
    assert format_latency(None, 9.0) == 0


def test_chat_guard_serialises_same_chat_only() -> None:
    async def runner() -> list[str]:
        guard = ChatGuard()
        order: list[str] = []
        release = asyncio.Event()

        async def work(chat: str, label: str, wait: bool = False) -> None:
            async with guard.lock(chat):
                order.append(f"{label}-start")
                if wait:
                    await release.wait()
                order.append(f"{label}-end")

        first = asyncio.create_task(work("a", "a1", wait=True))
        second = asyncio.create_task(work("a", "a2"))
        other = asyncio.create_task(work("b", "b1"))
        await other
        assert len(guard) == 1
        release.set()
        await asyncio.gather(first, second)
        assert len(guard) == 0
        return order

    order = asyncio.run(runner())
    assert order == ["a1-start", "b1-start", "b1-end", "a1-end", "a2-start", "a2-end"]
