"""Main CLI entry point."""

from pathlib import Path
from typing import Dict, Optional, Sequence, Type

from rich.console import Console

from mailwire.utils.config_manager import ConfigManager, LoggingConfig
from mailwire.utils.console import get_console, print_error, print_warning
from mailwire.utils.errors import (
    AuthenticationError,
    CommandRejectedError,
    ConfigurationError,
    MailwireError,
    UpgradeUnavailableError,
    format_error_message,
)
from mailwire.utils.logging import get_logger, init_logging, log_call

from .cli_parser import setup_argument_parser
from .commands.base import BaseCommandHandler
from .commands.config import ConfigCommand
from .commands.fetch import FetchCommand
from .commands.send import SendCommand
from .shell import ShellCommand

logger = get_logger(__name__)

COMMANDS: Dict[str, Type[BaseCommandHandler]] = {
    "fetch": FetchCommand,
    "send": SendCommand,
    "shell": ShellCommand,
    "config": ConfigCommand,
}

## Exit codes

EXIT_OK = 0
EXIT_REFUSED = 1  # server or policy said no
EXIT_USAGE = 2  # bad arguments or configuration
EXIT_FAILURE = -1  # transport, protocol or local failure
EXIT_INTERRUPTED = 130  # Standard SIGINT exit code


def exit_code_for(error: MailwireError) -> int:
    """Map an error to the process exit code."""
    if isinstance(error, (CommandRejectedError, AuthenticationError, UpgradeUnavailableError)):
        return EXIT_REFUSED
    if isinstance(error, ConfigurationError):
        return EXIT_USAGE
    return EXIT_FAILURE


def setup_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Console logging per configuration, DEBUG (protocol trace) with --verbose."""
    init_logging(
        "DEBUG" if verbose else config.console_level,
        log_dir=Path(config.log_dir).expanduser() if config.log_dir else None,
        file_level=config.file_level,
        max_file_size=config.max_file_size,
        backup_count=config.backup_count,
    )


@log_call
def dispatch_command(args, config_manager: ConfigManager, console: Console) -> int:
    """Run the handler for the parsed command.

    Returns:
        Exit code
    """
    handler = COMMANDS[args.command](config_manager, console)

    try:
        result = handler.execute(args)
        return EXIT_OK if result.success else EXIT_REFUSED

    except MailwireError as e:
        logger.debug(f"Command '{args.command}' failed", exc_info=True)
        print_error(f"Error: {format_error_message(e)}")

        response_lines = e.details.get("response")
        if response_lines and response_lines[-1] not in e.message:
            print_error(f"Server said: {response_lines[-1]}")

        return exit_code_for(e)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = get_console()

    parser = setup_argument_parser()
    args = parser.parse_args(argv)

    try:
        config_manager = ConfigManager(args.config_path)
        setup_logging(config_manager.config.logging, args.verbose)

    except MailwireError as e:
        print_error(f"Configuration error: {format_error_message(e)}")
        return EXIT_USAGE

    try:
        return dispatch_command(args, config_manager, console)

    except KeyboardInterrupt:
        print_warning("\nInterrupted by user", console)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
