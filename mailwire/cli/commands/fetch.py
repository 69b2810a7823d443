"""Fetch command: download the maildrop into .eml files."""

from pathlib import Path

from mailwire.core.email.pop3.retrieval import (
    MaildropSink,
    MailboxRetrieval,
    RetrievalOptions,
)
from mailwire.core.email.pop3.session import POP3Session
from mailwire.utils.console import print_info, print_success, print_warning
from mailwire.utils.errors import MissingCredentialsError

from .base import BaseCommandHandler, CommandResult


class FetchCommand(BaseCommandHandler):
    """Retrieve (and by default delete) every message on a POP3 server."""

    def execute(self, args) -> CommandResult:
        section = self.config_manager.config.pop3
        host = self.server_host(args, section, "pop3")

        # The user name is part of every file name, so it is needed up front
        username = self.pick(args, "username", section.username) or None
        if username is None:
            username = self.prompter.prompt_line("User name")
            if username is None:
                raise MissingCredentialsError("User name not provided")

        options = RetrievalOptions(
            username=username,
            password=self.pick(args, "password", section.password),
            upgrade_policy=self.upgrade_policy(args, section),
            use_apop=self.pick(args, "apop", section.use_apop),
            keep_on_server=self.pick(args, "keep", section.keep_on_server),
            query_capabilities=self.pick(args, "capa", section.query_capabilities),
        )

        session = POP3Session(host, **self.session_options(args, section))
        sink = MaildropSink(
            Path(self.pick(args, "download_dir", section.download_dir)).expanduser(),
            username,
            host,
            session.encoding,
        )

        print_info(f"Connecting to POP3 server {host}:{session.port}...", self.console)
        result = MailboxRetrieval(session, sink, options, self.prompter).run()

        if result.security_degraded:
            print_warning("Server does not support STLS; mail was fetched in clear text", self.console)

        if result.empty:
            print_info("No mail.", self.console)
        else:
            print_info(
                f"Found {result.summary.count} mail, {result.summary.total_bytes} bytes total.",
                self.console,
            )
            for message in result.retrieved:
                print_info(f"  [{message.item.id}] {message.location}", self.console)
            print_success(
                f"Retrieved {len(result.retrieved)} message(s), "
                f"deleted {len(result.deleted)} on the server.",
                self.console,
            )

        return CommandResult(
            success=True,
            data=result,
            metadata={"commands_sent": result.commands_sent},
        )
