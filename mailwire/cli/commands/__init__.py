"""Command handlers for the mailwire CLI

Each command has its own module; cli.COMMANDS maps command names to them.
"""

from .base import BaseCommandHandler, CommandResult
from .config import ConfigCommand
from .fetch import FetchCommand
from .send import SendCommand

__all__ = [
    "BaseCommandHandler",
    "CommandResult",
    "ConfigCommand",
    "FetchCommand",
    "SendCommand",
]
