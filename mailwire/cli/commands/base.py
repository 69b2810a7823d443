"""Base command class for CLI commands."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rich.console import Console

from mailwire.core.email.protocol import log_observer
from mailwire.core.email.upgrade import UpgradePolicy
from mailwire.ui.components.prompts import ConsolePrompter
from mailwire.utils.config_manager import ConfigManager, ServerConfig
from mailwire.utils.console import get_console
from mailwire.utils.errors import MissingConfigError
from mailwire.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Standard command result structure."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class BaseCommandHandler(ABC):
    """Base class for all command handlers."""

    def __init__(
        self,
        config_manager: ConfigManager,
        console: Optional[Console] = None,
        prompter=None,
    ):
        """Initialize command handler with config manager and console."""

        self.config_manager = config_manager
        self.console = console or get_console()
        self.prompter = prompter or ConsolePrompter(self.console)
        self.logger = logger

    @abstractmethod
    def execute(self, args) -> CommandResult:
        """Execute the command; errors propagate as MailwireError."""
        pass

    ## Argument Helpers

    @staticmethod
    def pick(args, name: str, configured: Any) -> Any:
        """Command-line value if given, else the configured one."""
        value = getattr(args, name, None)
        return configured if value is None else value

    def server_host(self, args, section: ServerConfig, command: str) -> str:
        host = self.pick(args, "server", section.host)
        if not host:
            raise MissingConfigError(
                f"No server given; use --server or 'mailwire config set {command}.host'"
            )
        return host

    def upgrade_policy(self, args, section: ServerConfig) -> UpgradePolicy:
        """--starttls [--if-supported] overrides the configured policy."""
        if getattr(args, "starttls", False):
            if getattr(args, "if_supported", False):
                return UpgradePolicy.BEST_EFFORT
            return UpgradePolicy.REQUIRED
        return UpgradePolicy(section.upgrade_policy)

    def session_options(self, args, section: ServerConfig) -> Dict[str, Any]:
        """Keyword arguments for a MailSession built from args and config."""
        return {
            "port": self.pick(args, "port", section.port),
            "implicit_tls": self.pick(args, "ssl", section.implicit_tls),
            "allow_insecure_cert": self.pick(args, "unsafe", section.allow_insecure_cert),
            "encoding": section.encoding,
            "timeout": self.pick(args, "timeout", section.timeout),
            "read_timeout": section.read_timeout,
            "observer": log_observer,
        }
