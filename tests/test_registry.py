from __future__ import annotations

import logging
from pathlib import Path

from chat_dispatch.bundled import BUNDLED_PLUGIN_DIR
from chat_dispatch.models import ExecutionContext
from chat_dispatch.registry import (
    CombinedPluginSource,
    DirectoryPluginSource,
    PluginRegistry,
    StaticPluginSource,
)


async def _noop(ctx: ExecutionContext) -> None:
    return None


async def _other(ctx: ExecutionContext) -> None:
    return None


def test_lookup_is_case_insensitive_alias_membership() -> None:
    registry = PluginRegistry()
    registry.load(
        StaticPluginSource(
            [{"command": ["Sticker", "S"], "help": ["Make a sticker"], "execute": _noop}]
        )
    )

    descriptor = registry.lookup("STICKER")
    assert descriptor is not None
    assert registry.lookup("s") is descriptor
    assert registry.lookup("stick") is None
    assert registry.lookup("") is None


def test_invalid_definitions_are_skipped(caplog) -> None:
    registry = PluginRegistry()
    source = StaticPluginSource(
        [
            {"command": [], "execute": _noop},
            {"command": "noexec"},
            {"command": "sync", "execute": lambda ctx: None},
            {"command": "two words", "execute": _noop},
            {"command": "ok", "execute": _noop},
        ]
    )

    with caplog.at_level(logging.WARNING, logger="chat_dispatch.registry"):
        count = registry.load(source)

    assert count == 1
    assert "ok" in registry
    assert "noexec" not in registry
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 4


def test_malformed_help_or_tags_do_not_abort_loading(caplog) -> None:
    registry = PluginRegistry()
    source = StaticPluginSource(
        [
            {"command": "badhelp", "help": 5, "execute": _noop},
            {"command": "badtags", "tags": 1, "execute": _noop},
            {"command": "mixed", "tags": ["fun", 2], "execute": _noop},
            {"command": "good", "help": "Single line", "tags": "fun", "execute": _noop},
        ]
    )

    with caplog.at_level(logging.WARNING, logger="chat_dispatch.registry"):
        count = registry.load(source)

    assert count == 1
    assert "badhelp" not in registry
    assert "badtags" not in registry
    assert "mixed" not in registry
    good = registry.lookup("good")
    assert good is not None
    assert good.help == ("Single line",)
    assert good.tags == ("fun",)
    assert "handler.help must be a string" in caplog.text


def test_last_loaded_definition_wins_alias() -> None:
    registry = PluginRegistry()
    registry.load(
        StaticPluginSource(
            [
                {"command": ["dl", "download"], "execute": _noop},
                {"command": "dl", "execute": _other},
            ]
        )
    )

    assert registry.lookup("dl").execute is _other
    assert registry.lookup("download").execute is _noop
    listed = {info.command for info in registry.list()}
    assert listed == {"download", "dl"}


def test_list_derives_alias_string_and_flags() -> None:
    registry = PluginRegistry()
    registry.load(
        StaticPluginSource(
            [
                {
                    "command": ["kick", "remove"],
                    "help": ["Remove a member", "Usage: .kick @user"],
                    "tags": ["group"],
                    "group": True,
                    "admin": True,
                    "botAdmin": True,
                    "execute": _noop,
                },
                {"command": "quiet", "execute": _noop},
            ]
        )
    )

    infos = {info.aliases[0]: info for info in registry.list()}
    kick = infos["kick"]
    assert kick.command == "kick,remove"
    assert kick.help == "Remove a member"
    assert kick.tags == ("group",)
    assert kick.group and kick.admin and kick.bot_admin and not kick.owner
    assert infos["quiet"].help == "No description"


def test_reload_swaps_index_and_keeps_captured_descriptor() -> None:
    registry = PluginRegistry()
    registry.load(StaticPluginSource([{"command": "old", "execute": _noop}]))
    captured = registry.lookup("old")

    registry.load(StaticPluginSource([{"command": "new", "execute": _other}]))

    assert registry.lookup("old") is None
    assert registry.lookup("new") is not None
    assert captured is not None and captured.execute is _noop


def test_failing_source_keeps_previous_plugins() -> None:
    class BrokenSource:
        def definitions(self):
            raise OSError("disk gone")

    registry = PluginRegistry()
    registry.load(StaticPluginSource([{"command": "keep", "execute": _noop}]))

    assert registry.load(BrokenSource()) == 1
    assert "keep" in registry


def test_directory_source_loads_modules_and_skips_broken(tmp_path: Path) -> None:
    (tmp_path / "echo.py").write_text(
        "async def execute(ctx):\n"
        "    await ctx.reply(' '.join(ctx.args))\n"
        "\n"
        "handler = {'command': ['echo', 'say'], 'help': ['Echo text'], 'execute': execute}\n",
        encoding="utf-8",
    )
    (tmp_path / "broken.py").write_text("raise RuntimeError('boom')\n", encoding="utf-8")
    (tmp_path / "nohandler.py").write_text("VALUE = 1\n", encoding="utf-8")
    (tmp_path / "_private.py").write_text("raise SystemExit\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    registry = PluginRegistry()
    count = registry.load(DirectoryPluginSource(tmp_path))

    assert count == 1
    descriptor = registry.lookup("SAY")
    assert descriptor is not None
    assert descriptor.origin == "echo.py"


def test_directory_source_creates_missing_directory(tmp_path: Path) -> None:
    target = tmp_path / "plugins"
    registry = PluginRegistry()

    assert registry.load(DirectoryPluginSource(target)) == 0
    assert target.is_dir()


def test_user_directory_overrides_bundled_plugins(tmp_path: Path) -> None:
    (tmp_path / "mytest.py").write_text(
        "async def execute(ctx):\n    return None\n\nhandler = {'command': 'test', 'execute': execute}\n",
        encoding="utf-8",
    )
    registry = PluginRegistry()
    registry.load(
        CombinedPluginSource(
            [
                DirectoryPluginSource(BUNDLED_PLUGIN_DIR, create=False),
                DirectoryPluginSource(tmp_path),
            ]
        )
    )

    assert registry.lookup("test").origin == "mytest.py"
    assert registry.lookup("demo").origin == "demo.py"
