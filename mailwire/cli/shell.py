"""Interactive POP3 shell for the 'mailwire shell' command."""

import threading
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.table import Table
from rich.text import Text

from mailwire.core.email.pop3.constants import INTERACTIVE_COMMANDS
from mailwire.core.email.pop3.interactive import END_OF_STREAM, InteractiveSession
from mailwire.core.email.pop3.session import POP3Session
from mailwire.core.email.upgrade import UpgradePolicy
from mailwire.utils.console import print_info, print_warning
from mailwire.utils.errors import OperationCancelledError
from mailwire.utils.logging import get_logger
from mailwire.utils.paths import SHELL_HISTORY_PATH

from .commands.base import BaseCommandHandler, CommandResult

logger = get_logger(__name__)

command_examples = {
    "CAPA": "See which commands this server implements",
    "DELE 2": "Remove e-mail number 2",
    "TOP 2 0": "See headers for e-mail number 2",
    "TOP 2 10": "See headers and 10 first body lines for e-mail number 2",
    "RETR 2": "Retrieve complete e-mail number 2",
    "RSET": "Undo all retrieval or delete operations",
    "QUIT": "Disconnect",
}


class POP3Shell:
    """REPL that forwards typed commands to an interactive POP3 session."""

    PROMPT = "pop3> "

    def __init__(
        self,
        interactive: InteractiveSession,
        console: Optional[Console] = None,
        prompt_session: Optional[PromptSession] = None,
    ):
        self.interactive = interactive
        self.console = console or Console()

        if prompt_session is None:
            SHELL_HISTORY_PATH.parent.mkdir(parents=True, exist_ok=True)
            prompt_session = PromptSession(
                history=FileHistory(str(SHELL_HISTORY_PATH)),
                auto_suggest=AutoSuggestFromHistory(),
                completer=WordCompleter(INTERACTIVE_COMMANDS, ignore_case=True),
            )
        self.prompt_session = prompt_session
        self._printer: Optional[threading.Thread] = None

    def _print_examples(self) -> None:
        table = Table(title="Command examples", show_lines=False)
        table.add_column("Command", style="cyan", no_wrap=True)
        table.add_column("Description")
        for command, description in command_examples.items():
            table.add_row(command, description)
        self.console.print(table)

    def _print_server_lines(self) -> None:
        while True:
            line = self.interactive.messages.get()
            if line is END_OF_STREAM:
                break
            self.console.print(Text(line, style="yellow"), highlight=False)

        listener = self.interactive.listener
        if listener is not None and listener.error is not None:
            print_warning(f"Connection closed: {listener.error.message}", self.console)

    def run(self) -> int:
        """Start the listener and read commands until QUIT or end of input.

        Returns:
            Exit code (0 on a regular QUIT)
        """
        self.interactive.start()
        self._print_examples()

        with patch_stdout():
            self._printer = threading.Thread(
                target=self._print_server_lines, name="pop3-printer", daemon=True
            )
            self._printer.start()

            while self.interactive.active:
                try:
                    line = self.prompt_session.prompt(self.PROMPT)
                except KeyboardInterrupt:
                    continue
                except EOFError:
                    logger.debug("End of input, closing POP3 session")
                    self.interactive.close()
                    break

                if not line.strip():
                    continue

                if not self.interactive.submit(line):
                    break

            self.interactive.close()
            self._printer.join(self.interactive.join_timeout)

        return 0


class ShellCommand(BaseCommandHandler):
    """Connect, log in and hand the POP3 session to the user."""

    def execute(self, args) -> CommandResult:
        section = self.config_manager.config.pop3

        host = self.pick(args, "server", section.host)
        if not host:
            host = self.prompter.prompt_line("Server name")
            if not host:
                raise OperationCancelledError("No server name given")

        policy = None
        if args.starttls:
            policy = self.upgrade_policy(args, section)
        elif section.upgrade_policy != UpgradePolicy.NONE.value:
            policy = UpgradePolicy(section.upgrade_policy)

        session = POP3Session(host, **self.session_options(args, section))

        interactive = InteractiveSession(
            session,
            self.prompter,
            username=self.pick(args, "username", section.username) or None,
            password=self.pick(args, "password", section.password),
            upgrade_policy=policy,
            use_apop=bool(self.pick(args, "apop", section.use_apop)),
        )

        print_info(f"Connecting to POP3 server {host} port {session.port}...", self.console)
        summary = interactive.prepare()

        if not summary.items:
            print_info("No mail.", self.console)
            return CommandResult(success=True, data=summary)

        print_info(
            f"Found {summary.count} mail, {summary.total_bytes} bytes total.",
            self.console,
        )

        exit_code = POP3Shell(interactive, self.console).run()
        return CommandResult(success=exit_code == 0, data=summary)
