"""SMTP session: greeting, EHLO/HELO, STARTTLS, envelope and DATA."""

from typing import FrozenSet, Iterable, Optional

from mailwire.core.email.constants import Dialect
from mailwire.core.email.protocol import Response, stuff_line
from mailwire.core.email.session import MailSession
from mailwire.utils.logging import get_logger

from .constants import (
    DEFAULT_ENCODING,
    RCPT_ACCEPTED,
    SMTPCommands,
    SMTPPorts,
    SMTPResponse,
)

logger = get_logger(__name__)


def parse_extensions(response: Response) -> FrozenSet[str]:
    """Extension keywords from an EHLO reply, upper-cased.

    The first line carries the server's domain and is skipped.
    """
    keywords = set()
    for line in response.lines[1:]:
        parts = line[4:].split()
        if parts:
            keywords.add(parts[0].upper())
    return frozenset(keywords)


class SMTPSession(MailSession):
    """Client side of one SMTP conversation."""

    dialect = Dialect.SMTP
    default_port = SMTPPorts.SMTP
    default_tls_port = SMTPPorts.SUBMISSION_SSL
    starttls_command = SMTPCommands.STARTTLS
    default_encoding = DEFAULT_ENCODING

    def __init__(self, host: str, port: Optional[int] = None, **kwargs):
        super().__init__(host, port, **kwargs)
        self.extensions: FrozenSet[str] = frozenset()

    @property
    def supports_starttls(self) -> bool:
        return SMTPCommands.STARTTLS in self.extensions

    def hello(self, name: str, extended: bool = True) -> Response:
        """Send EHLO (or HELO) and record the advertised extensions.

        Raises:
            CommandRejectedError: Unless the server answers 250
        """
        verb = SMTPCommands.EHLO if extended else SMTPCommands.HELO
        response = self.expect(verb, verb, name, codes=(SMTPResponse.OK,))
        self.extensions = parse_extensions(response) if extended else frozenset()
        return response

    def mail_from(self, sender: Optional[str]) -> Response:
        """MAIL FROM:<sender>; None gives the null reverse-path."""
        return self.expect(
            SMTPCommands.MAIL,
            SMTPCommands.MAIL,
            f"FROM:<{sender or ''}>",
            codes=(SMTPResponse.OK,),
        )

    def rcpt_to(self, recipient: str) -> Response:
        return self.expect(
            SMTPCommands.RCPT,
            SMTPCommands.RCPT,
            f"TO:<{recipient}>",
            codes=RCPT_ACCEPTED,
        )

    def data(self, header: Iterable[str], body: Iterable[str]) -> Response:
        """Transfer the message: header, blank line, body, ".".

        Every line is dot-stuffed. Lines are streamed as the body iterator
        yields them.

        Raises:
            CommandRejectedError: If DATA is not answered with 354 or the
                message is not accepted with 250
        """
        self.expect(
            SMTPCommands.DATA, SMTPCommands.DATA, codes=(SMTPResponse.START_MAIL,)
        )

        channel = self.channel
        lines = 0
        for line in header:
            channel.write_line(stuff_line(line))
            lines += 1

        channel.write_line("")

        for line in body:
            channel.write_line(stuff_line(line))
            lines += 1

        logger.debug(f"Wrote {lines} message lines to {self.host}")
        return self.expect("DATA end", ".", codes=(SMTPResponse.OK,))

    ## Dialect hooks

    def _accepts_greeting(self, response: Response) -> bool:
        return response.has_code(SMTPResponse.SERVICE_READY)

    def _accepts_starttls(self, response: Response) -> bool:
        return response.has_code(SMTPResponse.SERVICE_READY)
