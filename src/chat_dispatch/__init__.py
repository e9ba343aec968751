"""Chat command dispatcher with plugin registry and deleted-message recovery."""

from .app import ChatDispatchApp
from .config import BotConfig, ConfigError
from .router import CommandRouter, DispatchOutcome

__all__ = [
    "BotConfig",
    "ChatDispatchApp",
    "CommandRouter",
    "ConfigError",
    "DispatchOutcome",
]
