"""Plugin registry: loads command definitions and indexes them by alias."""

from __future__ import annotations

import importlib.util
import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping, Protocol, Sequence

from .models import ExecutionContext

logger = logging.getLogger(__name__)

PluginCallback = Callable[[ExecutionContext], Awaitable[None]]


class PluginLoadError(Exception):
    """A single plugin definition could not be turned into a descriptor."""


@dataclass(frozen=True, slots=True)
class PluginRequirements:
    group: bool = False
    owner: bool = False
    admin: bool = False
    bot_admin: bool = False


@dataclass(frozen=True, slots=True)
class PluginDescriptor:
    aliases: frozenset[str]
    execute: PluginCallback
    help: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    requirements: PluginRequirements = PluginRequirements()
    origin: str = "<static>"
    primary: str = ""

    @property
    def name(self) -> str:
        return self.primary or min(self.aliases)


@dataclass(frozen=True, slots=True)
class CommandInfo:
    """Presentation view of a descriptor used by the menu."""

    command: str
    aliases: tuple[str, ...]
    help: str
    tags: tuple[str, ...]
    group: bool
    admin: bool
    bot_admin: bool
    owner: bool


@dataclass(frozen=True, slots=True)
class PluginDefinition:
    """Raw definition as produced by a :class:`PluginDefinitionSource`."""

    origin: str
    handler: Any


class PluginDefinitionSource(Protocol):
    def definitions(self) -> Iterator[PluginDefinition]: ...


class StaticPluginSource:
    """Definitions registered in code, e.g. by tests or embedding applications."""

    def __init__(self, handlers: Iterable[Mapping[str, Any]] = ()) -> None:
        self._handlers = list(handlers)

    def definitions(self) -> Iterator[PluginDefinition]:
        for index, handler in enumerate(self._handlers):
            yield PluginDefinition(origin=f"<static:{index}>", handler=handler)


class CombinedPluginSource:
    """Several sources read in order; later definitions win alias conflicts."""

    def __init__(self, sources: Iterable[PluginDefinitionSource]) -> None:
        self._sources = list(sources)

    def definitions(self) -> Iterator[PluginDefinition]:
        for source in self._sources:
            yield from source.definitions()


class DirectoryPluginSource:
    """Python modules in a directory, each exposing a module-level ``handler``."""

    def __init__(self, directory: Path, *, create: bool = True) -> None:
        self._directory = Path(directory)
        self._create = create

    @property
    def directory(self) -> Path:
        return self._directory

    def definitions(self) -> Iterator[PluginDefinition]:
        if not self._directory.exists():
            if self._create:
                self._directory.mkdir(parents=True, exist_ok=True)
                logger.info("Created plugin directory %s", self._directory)
            return
        files = sorted(
            path
            for path in self._directory.glob("*.py")
            if not path.name.startswith("_")
        )
        logger.info("Found %d plugin file(s) in %s", len(files), self._directory)
        for path in files:
            try:
                module = _import_file(path)
            except Exception as exc:
                logger.error("Failed to load plugin %s: %s", path.name, exc)
                continue
            yield PluginDefinition(origin=path.name, handler=getattr(module, "handler", None))


def _import_file(path: Path) -> ModuleType:
    # A fresh module object per load so edits are picked up on reload.
    module_name = f"chat_dispatch_plugin_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _text_entries(value: Any, field: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, Iterable) and not isinstance(value, Mapping):
        entries = list(value)
        if all(isinstance(entry, str) for entry in entries):
            return tuple(entries)
    raise PluginLoadError(f"handler.{field} must be a string or a list of strings")


def build_descriptor(definition: PluginDefinition) -> PluginDescriptor:
    """Validate a raw definition; raise :class:`PluginLoadError` when unusable."""

    handler = definition.handler
    if not isinstance(handler, Mapping):
        raise PluginLoadError("missing handler mapping")

    raw_command = handler.get("command")
    if isinstance(raw_command, str):
        raw_aliases: Sequence[Any] = [raw_command]
    elif isinstance(raw_command, Iterable):
        raw_aliases = list(raw_command)
    else:
        raw_aliases = []
    ordered: list[str] = []
    for alias in raw_aliases:
        token = str(alias).strip().casefold()
        if not token or any(ch.isspace() for ch in token):
            raise PluginLoadError(f"invalid alias {alias!r}")
        if token not in ordered:
            ordered.append(token)
    if not ordered:
        raise PluginLoadError("missing handler.command")

    execute = handler.get("execute")
    if not callable(execute):
        raise PluginLoadError("missing handler.execute")
    if not inspect.iscoroutinefunction(execute) and not inspect.iscoroutinefunction(
        getattr(execute, "__call__", None)
    ):
        raise PluginLoadError("handler.execute must be an async function")

    return PluginDescriptor(
        aliases=frozenset(ordered),
        primary=ordered[0],
        execute=execute,
        help=_text_entries(handler.get("help"), "help"),
        tags=_text_entries(handler.get("tags"), "tags"),
        requirements=PluginRequirements(
            group=bool(handler.get("group", False)),
            owner=bool(handler.get("owner", False)),
            admin=bool(handler.get("admin", False)),
            bot_admin=bool(handler.get("bot_admin", handler.get("botAdmin", False))),
        ),
        origin=definition.origin,
    )


class PluginRegistry:
    """Alias index over loaded plugin descriptors.

    The index is rebuilt off to the side on every :meth:`load` and published
    with a single assignment, so lookups racing a reload observe either the
    complete old index or the complete new one.
    """

    def __init__(self) -> None:
        self._index: dict[str, PluginDescriptor] = {}

    def load(self, source: PluginDefinitionSource) -> int:
        """Replace the registry with the definitions from ``source``.

        Invalid definitions are skipped with a warning; returns the number of
        descriptors now registered.
        """

        index: dict[str, PluginDescriptor] = {}
        try:
            definitions = list(source.definitions())
        except Exception:
            logger.exception("Plugin source failed, keeping %d loaded plugin(s)", len(self))
            return len(self)

        for definition in definitions:
            try:
                descriptor = build_descriptor(definition)
            except PluginLoadError as exc:
                logger.warning("Plugin %s has invalid format: %s", definition.origin, exc)
                continue
            except Exception:
                logger.exception("Plugin %s could not be registered", definition.origin)
                continue
            for alias in descriptor.aliases:
                previous = index.get(alias)
                if previous is not None and previous.origin != descriptor.origin:
                    logger.warning(
                        "Alias %r from %s replaces the one from %s",
                        alias,
                        descriptor.origin,
                        previous.origin,
                    )
                index[alias] = descriptor
            logger.info("Loaded plugin %s (%s)", descriptor.origin, ", ".join(sorted(descriptor.aliases)))

        self._index = index
        logger.info("Total plugins loaded: %d", len(self))
        return len(self)

    def lookup(self, token: str) -> PluginDescriptor | None:
        if not token:
            return None
        return self._index.get(token.casefold())

    def descriptors(self) -> list[PluginDescriptor]:
        index = self._index
        unique: dict[int, PluginDescriptor] = {}
        for descriptor in index.values():
            unique.setdefault(id(descriptor), descriptor)
        live = []
        for descriptor in unique.values():
            # Only the aliases that still point at this descriptor are live.
            if any(index.get(alias) is descriptor for alias in descriptor.aliases):
                live.append(descriptor)
        return sorted(live, key=lambda item: item.name)

    def list(self) -> list[CommandInfo]:
        index = self._index
        commands: list[CommandInfo] = []
        for descriptor in self.descriptors():
            aliases = tuple(
                alias
                for alias in _ordered_aliases(descriptor)
                if index.get(alias) is descriptor
            )
            requirements = descriptor.requirements
            commands.append(
                CommandInfo(
                    command=",".join(aliases),
                    aliases=aliases,
                    help=descriptor.help[0] if descriptor.help else "No description",
                    tags=descriptor.tags,
                    group=requirements.group,
                    admin=requirements.admin,
                    bot_admin=requirements.bot_admin,
                    owner=requirements.owner,
                )
            )
        return commands

    def __len__(self) -> int:
        return len(self.descriptors())

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and self.lookup(token) is not None


def _ordered_aliases(descriptor: PluginDescriptor) -> list[str]:
    rest = sorted(alias for alias in descriptor.aliases if alias != descriptor.primary)
    return [descriptor.primary, *rest] if descriptor.primary else rest
