"""Message submission: send one message read from a file or stdin.

Flow::

    greeting -> EHLO|HELO -> [STARTTLS -> EHLO] -> MAIL FROM
             -> RCPT TO (each) -> DATA -> header, "", body -> "."
             -> [delete source] -> QUIT

The greeting command is re-issued after a successful STARTTLS because the
advertised extensions may change once the channel is encrypted.

Envelope addresses default to values found in the message header:

- sender: the first header line starting with "Return-Path: ", "Reply-To: "
  or "From: " (whichever comes first in the header)
- recipients: the first "Delivered-To: " line, otherwise every "To: " line

Surrounding angle brackets are trimmed; nothing else is parsed.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterator, List, Optional, Sequence, TextIO

from mailwire.core.email.session import QUIT_ON
from mailwire.core.email.upgrade import UpgradePolicy, UpgradeState
from mailwire.utils.errors import FileSystemError, InvalidConfigError
from mailwire.utils.logging import get_logger, log_call, log_event

from .session import SMTPSession

logger = get_logger(__name__)

SENDER_HEADERS = ("return-path: ", "reply-to: ", "from: ")
DELIVERED_TO_HEADER = "delivered-to: "
TO_HEADER = "to: "


## Header-derived addresses


def _trim_address(value: str) -> str:
    return value.lstrip("<").rstrip(">")


def _header_value(line: str) -> str:
    return _trim_address(line[line.index(": ") + 2 :])


def derive_sender(header: Sequence[str]) -> Optional[str]:
    """Reverse-path taken from the header, or None."""
    for line in header:
        if line.lower().startswith(SENDER_HEADERS):
            return _header_value(line)
    return None


def derive_recipients(header: Sequence[str]) -> List[str]:
    """Forward-paths taken from the header (possibly empty)."""
    for line in header:
        if line.lower().startswith(DELIVERED_TO_HEADER):
            return [_header_value(line)]

    return [
        _trim_address(line[len(TO_HEADER) :])
        for line in header
        if line.lower().startswith(TO_HEADER)
    ]


## Message source


class MessageSource:
    """A message split into its header block and a lazy body.

    The header ends at the first empty line (which is consumed) or at the end
    of input. Body lines are read only when iterated.
    """

    def __init__(self, stream: TextIO, path: Optional[Path] = None):
        self._stream = stream
        self.path = Path(path) if path is not None else None
        self.header: List[str] = []
        self.body_lines = 0

        for line in self._lines():
            if line == "":
                break
            self.header.append(line)

    @classmethod
    def from_file(cls, path: Path, encoding: str = "utf-8") -> "MessageSource":
        """Open a message file.

        Raises:
            FileSystemError: If the file cannot be opened
        """
        path = Path(path)
        try:
            stream = open(path, "r", encoding=encoding, errors="surrogateescape")
        except OSError as e:
            raise FileSystemError(
                f"Cannot open {path}", details={"path": str(path)}
            ) from e
        return cls(stream, path)

    @classmethod
    def from_stdin(cls) -> "MessageSource":
        return cls(sys.stdin)

    @property
    def body(self) -> Iterator[str]:
        for line in self._lines():
            self.body_lines += 1
            yield line

    def close(self) -> None:
        if self._stream is not sys.stdin:
            self._stream.close()

    def discard(self) -> None:
        """Close and delete the source file (no-op for stdin).

        Raises:
            FileSystemError: If the file cannot be removed
        """
        self.close()
        if self.path is None:
            return

        try:
            self.path.unlink()
        except OSError as e:
            raise FileSystemError(
                f"Cannot delete {self.path}", details={"path": str(self.path)}
            ) from e

        logger.info(f"Deleted {self.path}")

    def _lines(self) -> Iterator[str]:
        for raw in self._stream:
            yield raw[:-1] if raw.endswith("\n") else raw

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


## Driver


@dataclass
class SubmissionOptions:
    helo_name: str
    sender: Optional[str] = None
    recipients: List[str] = field(default_factory=list)
    upgrade_policy: UpgradePolicy = UpgradePolicy.NONE
    delete_source: bool = False


@dataclass
class SubmissionResult:
    """What one submission session did."""

    server: str
    sender: Optional[str] = None
    recipients: List[str] = field(default_factory=list)
    extensions: FrozenSet[str] = frozenset()
    upgrade_state: UpgradeState = UpgradeState.PLAIN
    security_degraded: bool = False
    body_lines: int = 0
    source_deleted: bool = False
    commands_sent: int = 0


class MessageSubmission:
    """Runs one complete submission session against an SMTP server."""

    def __init__(
        self,
        session: SMTPSession,
        source: MessageSource,
        options: SubmissionOptions,
    ):
        self.session = session
        self.source = source
        self.options = options

    def envelope(self):
        """Sender and recipients: explicit values, else header-derived.

        Raises:
            InvalidConfigError: If no recipient is known
        """
        sender = self.options.sender or derive_sender(self.source.header)
        recipients = list(self.options.recipients) or derive_recipients(
            self.source.header
        )
        if not recipients:
            raise InvalidConfigError(
                "No recipients given and none found in the message header"
            )
        return sender, recipients

    @log_call
    def run(self) -> SubmissionResult:
        """Connect, submit and disconnect.

        Raises:
            MailwireError: The first failure; the session is closed either way
        """
        session = self.session
        options = self.options
        result = SubmissionResult(server=session.host)

        try:
            sender, recipients = self.envelope()
            result.sender = sender

            session.connect()
            result.upgrade_state = self._hello()
            result.extensions = session.extensions
            result.security_degraded = session.security_degraded

            session.mail_from(sender)
            for recipient in recipients:
                session.rcpt_to(recipient)
                result.recipients.append(recipient)

            session.data(self.source.header, self.source.body)
            result.body_lines = self.source.body_lines
            log_event(
                "message_sent",
                f"Message accepted by {session.host} for {len(recipients)} recipient(s)",
                server=session.host,
            )

            if options.delete_source:
                self.source.discard()
                result.source_deleted = self.source.path is not None

            session.quit()

        except QUIT_ON as e:
            logger.error(f"Submission to {session.host} stopped: {e.message}")
            session.abort()
            raise

        finally:
            session.close()
            self.source.close()
            result.commands_sent = session.sequence

        return result

    def _hello(self) -> UpgradeState:
        session = self.session
        policy = self.options.upgrade_policy
        extended = policy.requested

        while True:
            session.hello(self.options.helo_name, extended=extended)

            if extended and not session.encrypted:
                state = session.start_tls(policy, offered=session.supports_starttls)
                if state is UpgradeState.UPGRADED:
                    continue
                return state

            return session.tls.state
