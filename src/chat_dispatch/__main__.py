"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import os
from pathlib import Path
from typing import Any, Callable

from .app import ChatDispatchApp
from .config import BotConfig, ConfigError


def load_transport_factory(spec: str) -> Callable[[BotConfig], Any]:
    """Resolve ``package.module:callable`` into the transport factory it names."""

    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"expected 'module:factory', got {spec!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ValueError(f"{spec!r} is not callable")
    return factory


def main() -> None:
    parser = argparse.ArgumentParser(description="Route chat commands to plugins")
    parser.add_argument(
        "--transport",
        default=os.getenv("CHAT_DISPATCH_TRANSPORT"),
        help=(
            "Transport factory as module:callable. Can also be set via "
            "CHAT_DISPATCH_TRANSPORT"
        ),
    )
    parser.add_argument("--plugin-dir", help="Plugin directory (PLUGIN_DIR)")
    parser.add_argument("--port", type=int, help="Health endpoint port (PORT)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    parser.add_argument("--log-file", help="Also write the log to this file")
    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if args.log_file:
        file_handler = logging.FileHandler(args.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logging.getLogger().addHandler(file_handler)

    if not args.transport:
        parser.error("Pass --transport or set CHAT_DISPATCH_TRANSPORT")

    try:
        config = BotConfig.from_env()
    except ConfigError as exc:
        parser.error(str(exc))
    if args.plugin_dir:
        config.plugin_dir = Path(args.plugin_dir)
    if args.port is not None:
        config.port = args.port

    try:
        factory = load_transport_factory(args.transport)
    except (ImportError, ValueError) as exc:
        parser.error(f"Cannot load transport: {exc}")

    app = ChatDispatchApp(config, factory(config))
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Stopped by user request")


if __name__ == "__main__":
    main()
