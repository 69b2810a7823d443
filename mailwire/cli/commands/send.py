"""Send command: submit one message from a file or stdin."""

from mailwire.core.email.smtp.session import SMTPSession
from mailwire.core.email.smtp.submission import (
    MessageSource,
    MessageSubmission,
    SubmissionOptions,
)
from mailwire.utils.console import print_info, print_success, print_warning
from mailwire.utils.errors import InvalidConfigError

from ..cli_parser import split_recipients
from .base import BaseCommandHandler, CommandResult


class SendCommand(BaseCommandHandler):
    """Submit a message to an SMTP server."""

    def execute(self, args) -> CommandResult:
        section = self.config_manager.config.smtp
        host = self.server_host(args, section, "smtp")

        delete_source = self.pick(args, "delete", section.delete_after_send)
        if delete_source and not args.file:
            if args.delete:
                raise InvalidConfigError("--delete requires --file")
            delete_source = False

        options = SubmissionOptions(
            helo_name=self.pick(args, "helo_name", section.helo_name),
            sender=self.pick(args, "sender", section.sender),
            recipients=split_recipients(args.recipients) or list(section.recipients),
            upgrade_policy=self.upgrade_policy(args, section),
            delete_source=delete_source,
        )

        # Header is read before connecting, like the rest of the envelope
        if args.file:
            source = MessageSource.from_file(args.file, section.encoding)
        else:
            source = MessageSource.from_stdin()

        session = SMTPSession(host, **self.session_options(args, section))

        print_info(f"Connecting to SMTP server {host}:{session.port}...", self.console)
        result = MessageSubmission(session, source, options).run()

        if result.security_degraded:
            print_warning("Server does not support STARTTLS; message was sent in clear text", self.console)

        print_success(
            f"Message from <{result.sender or ''}> accepted for "
            f"{', '.join(result.recipients)}",
            self.console,
        )
        if result.source_deleted:
            print_info(f"Deleted {args.file}", self.console)

        return CommandResult(
            success=True,
            data=result,
            metadata={"commands_sent": result.commands_sent},
        )
