"""User prompt components.

The protocol engine never reads the terminal itself. Anything that may need
credentials or a yes/no decision takes a Prompter; ConsolePrompter is the
rich-based implementation used by the CLI, tests pass their own.
"""

from typing import Optional, Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt

from mailwire.utils.console import get_console


class Prompter(Protocol):
    """Capability the engine uses to ask the user something.

    Every method returns None when the user cancels.
    """

    def prompt_line(self, message: str) -> Optional[str]: ...

    def prompt_password(self, message: str) -> Optional[str]: ...

    def confirm(self, message: str, default: bool = False) -> Optional[bool]: ...


class ConfirmPrompt:
    """Confirmation prompt component.

    Used by: fetch (TLS / cleartext decisions), shell.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def ask(self, message: str, default: bool = False) -> Optional[bool]:
        """Ask yes/no confirmation.

        Args:
            message: Confirmation message
            default: Default value if user presses Enter

        Returns:
            True or False, None if cancelled
        """
        try:
            return Confirm.ask(message, default=default, console=self.console)
        except (KeyboardInterrupt, EOFError):
            return None


class InputPrompt:
    """Text input prompt component.

    Used by: credential and server name prompts.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def ask(
        self, message: str, default: str = "", password: bool = False
    ) -> Optional[str]:
        """Ask for text input.

        Args:
            message: Prompt message
            default: Default value
            password: Hide input (for passwords)

        Returns:
            User input or None if cancelled
        """
        try:
            return Prompt.ask(
                message,
                default=default if default else None,
                password=password,
                console=self.console,
            )
        except (KeyboardInterrupt, EOFError):
            return None


class ConsolePrompter:
    """Prompter backed by the rich console prompts."""

    def __init__(self, console: Optional[Console] = None):
        self.input = InputPrompt(console)
        self.confirmation = ConfirmPrompt(console)

    def prompt_line(self, message: str) -> Optional[str]:
        return self.input.ask(message)

    def prompt_password(self, message: str) -> Optional[str]:
        return self.input.ask(message, password=True)

    def confirm(self, message: str, default: bool = False) -> Optional[bool]:
        return self.confirmation.ask(message, default=default)
