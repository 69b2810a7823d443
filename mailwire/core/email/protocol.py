"""Command/response cycle for line-oriented mail protocols.

- ResponseReader: decodes lines and groups them into responses per dialect
- Payload: lazy, single-pass reader for dot-terminated multi-line data
- CommandChannel: writes one command and waits for its complete response

Line classification
-------------------
POP3: a line is terminal when its first whitespace-delimited token is "+OK" or
"-ERR" (case-insensitive). Anything before it belongs to the same response.

SMTP: every line starts with a three digit code. A space after the code (or
nothing at all) ends the response, a hyphen continues it. Any other shape is
a protocol violation.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple

from mailwire.utils.errors import ProtocolViolationError, SessionStateError
from mailwire.utils.logging import get_logger

from .constants import REDACTED_ARGUMENT, Dialect, Lines, StatusClass
from .transport import Transport

logger = get_logger(__name__)

# Observer(direction, line); direction is ">" for sent lines, "<" for received
Observer = Callable[[str, str], None]

POP3_OK = "+OK"
POP3_ERR = "-ERR"


def log_observer(direction: str, line: str) -> None:
    """Default observer: protocol trace at debug level."""
    logger.debug(f"{direction} {line}", extra={"direction": direction})


## Dot-stuffing


def stuff_line(line: str) -> str:
    """Double a leading "." so a body line cannot end the data section."""
    return "." + line if line.startswith(".") else line


def unstuff_line(line: str) -> str:
    """Undo stuff_line() on a received payload line."""
    return line[1:] if line.startswith(".") else line


## Commands and responses


@dataclass(frozen=True)
class Command:
    """One outgoing request line."""

    tokens: Tuple[str, ...]
    redact_argument: bool = False

    @classmethod
    def build(cls, *tokens: str) -> "Command":
        """Create a command, flagging PASS so its argument is never echoed."""
        if not tokens:
            raise ValueError("A command needs at least one token")

        return cls(tuple(tokens), redact_argument=tokens[0].upper() == "PASS")

    @classmethod
    def from_line(cls, line: str) -> "Command":
        """Create a command from a raw line typed by a user.

        Everything after a PASS verb is one argument, so a pass phrase with
        spaces is redacted as a whole.
        """
        verb = line.split(" ", 1)[0]
        if verb.upper() == "PASS":
            return cls.build(*line.split(" ", 1))
        return cls.build(*line.split(" "))

    @property
    def verb(self) -> str:
        return self.tokens[0].upper()

    @property
    def line(self) -> str:
        return " ".join(self.tokens)

    def echo(self) -> str:
        """The line as it may appear in logs and on screen."""
        if self.redact_argument and len(self.tokens) > 1:
            return " ".join((self.tokens[0], REDACTED_ARGUMENT) + self.tokens[2:])
        return self.line


def _has_reply_code(line: str) -> bool:
    code = line[:3]
    return len(code) == 3 and code.isascii() and code.isdigit()


def is_terminal_line(line: str, dialect: Dialect) -> bool:
    """Tell whether a line ends a response.

    Raises:
        ProtocolViolationError: For an SMTP line without a valid status prefix
    """
    if dialect is Dialect.POP3:
        tokens = line.split(None, 1)
        return bool(tokens) and tokens[0].upper() in (POP3_OK, POP3_ERR)

    if not _has_reply_code(line):
        raise ProtocolViolationError(
            f"{line!r} is not a valid response", details={"line": line}
        )

    if len(line) == 3 or line[3] == " ":
        return True

    if line[3] == "-":
        return False

    raise ProtocolViolationError(
        f"{line!r} is not a valid response", details={"line": line}
    )


@dataclass
class Response:
    """All lines elicited by one command; the last one carries the status."""

    dialect: Dialect
    lines: List[str]
    payload: Optional[List[str]] = field(default=None)

    def __post_init__(self):
        if not self.lines:
            raise ProtocolViolationError("Empty response")

    @property
    def status_line(self) -> str:
        return self.lines[-1]

    @property
    def continuation(self) -> List[str]:
        return self.lines[:-1]

    @property
    def fields(self) -> List[str]:
        return self.status_line.split()

    @property
    def code(self) -> Optional[int]:
        """Numeric reply code (SMTP only)."""
        if self.dialect is Dialect.SMTP:
            if not _has_reply_code(self.status_line):
                raise ProtocolViolationError(
                    f"{self.status_line!r} has no reply code",
                    details={"line": self.status_line},
                )
            return int(self.status_line[:3])
        return None

    @property
    def status(self) -> StatusClass:
        if self.dialect is Dialect.POP3:
            fields = self.fields
            if fields and fields[0].upper() == POP3_OK:
                return StatusClass.SUCCESS
            return StatusClass.FAILURE

        first_digit = self.status_line[0]
        if first_digit == "2":
            return StatusClass.SUCCESS
        if first_digit in "13":
            return StatusClass.INTERMEDIATE
        return StatusClass.FAILURE

    @property
    def ok(self) -> bool:
        return self.status is StatusClass.SUCCESS

    @property
    def text(self) -> str:
        """Status line without its status marker."""
        if self.dialect is Dialect.POP3:
            parts = self.status_line.split(None, 1)
            return parts[1] if len(parts) > 1 else ""
        return self.status_line[4:]

    def has_code(self, *codes: int) -> bool:
        return self.code in codes


## Reading


class ResponseReader:
    """Reads decoded lines from a transport and assembles responses."""

    def __init__(
        self,
        transport: Transport,
        dialect: Dialect,
        encoding: str,
        observer: Observer = log_observer,
    ):
        self.transport = transport
        self.dialect = dialect
        self.encoding = encoding
        self.observer = observer

    def read_line(self, observe: bool = True) -> Optional[str]:
        """Next line without its terminator, or None at end of stream.

        Payload lines are read with observe=False so message content never
        reaches the protocol trace.
        """
        raw = self.transport.readline()
        if raw is None:
            return None

        if raw.endswith(b"\r\n"):
            raw = raw[:-2]
        elif raw.endswith(b"\n"):
            raw = raw[:-1]

        # surrogateescape keeps undecodable octets so payloads re-encode verbatim
        line = raw.decode(self.encoding, errors="surrogateescape")
        if observe:
            self.observer("<", line)
        return line

    def read_response(self) -> Response:
        """Read lines up to and including the next terminal status line.

        Raises:
            ProtocolViolationError: On a malformed line or end of stream
        """
        lines: List[str] = []
        while True:
            line = self.read_line()
            if line is None:
                raise ProtocolViolationError(
                    "Connection closed before a complete response",
                    details={"received": lines, "host": self.transport.host},
                )

            lines.append(line)
            if is_terminal_line(line, self.dialect):
                return Response(self.dialect, lines)

    def read_payload(self) -> "Payload":
        return Payload(self)


class Payload:
    """Dot-terminated multi-line data, consumed once and in order."""

    def __init__(self, reader: ResponseReader):
        self._reader = reader
        self._done = False
        self.lines_read = 0

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        if self._done:
            raise StopIteration

        line = self._reader.read_line(observe=False)
        if line is None:
            self._done = True
            raise ProtocolViolationError(
                "Unexpected end of data stream",
                details={"lines_read": self.lines_read},
            )

        if line == Lines.PAYLOAD_END:
            self._done = True
            raise StopIteration

        self.lines_read += 1
        return unstuff_line(line)

    @property
    def done(self) -> bool:
        return self._done

    def drain(self) -> int:
        """Consume whatever is left; returns the number of lines skipped."""
        skipped = 0
        for _ in self:
            skipped += 1
        return skipped


## Writing


class CommandChannel:
    """Strictly sequential command/response exchange over one transport.

    The transport and its reader are swapped together by bind(); nothing keeps
    a reference to the pre-upgrade pair. Not reentrant: a second command while
    one is outstanding, or while a payload is unread, is a SessionStateError.
    """

    def __init__(
        self,
        transport: Transport,
        dialect: Dialect,
        encoding: str = "utf-8",
        observer: Optional[Observer] = None,
    ):
        self.dialect = dialect
        self.encoding = encoding
        self.observer = observer or log_observer
        self.sequence = 0
        self._lock = threading.Lock()
        self._payload: Optional[Payload] = None
        self._passthrough = False
        self.bind(transport)

    def bind(self, transport: Transport) -> None:
        """Attach a (new) transport and a reader bound to it."""
        self._transport = transport
        self.reader = ResponseReader(transport, self.dialect, self.encoding, self.observer)
        self._payload = None

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def passthrough(self) -> bool:
        return self._passthrough

    def read_response(self) -> Response:
        """Wait for a response that no command asked for (the greeting)."""
        with self._exclusive():
            return self.reader.read_response()

    def send(self, *tokens: str) -> Response:
        """Join tokens with spaces, send them and wait for the full response."""
        return self.execute(Command.build(*tokens))

    def execute(self, command: Command) -> Response:
        with self._exclusive():
            self._write_command(command)
            return self.reader.read_response()

    def open_payload(self) -> Payload:
        """Start reading the multi-line data that follows a positive response."""
        if self._passthrough:
            raise SessionStateError("Channel is in passthrough mode")
        self._check_payload()
        self._payload = self.reader.read_payload()
        return self._payload

    def write_line(self, line: str) -> None:
        """Write a data line (message content); not echoed to the observer."""
        self._transport.write(self._encode(line))

    ## Passthrough (interactive use)

    def begin_passthrough(self) -> None:
        """Hand reading over to an external listener; send() is refused after this."""
        with self._exclusive():
            self._passthrough = True

    def send_raw(self, command: Command) -> None:
        """Write a command without waiting for its response (passthrough only)."""
        if not self._passthrough:
            raise SessionStateError("send_raw() requires passthrough mode")
        self._write_command(command)

    ## Internals

    def _write_command(self, command: Command) -> None:
        self.sequence += 1
        self.observer(">", command.echo())
        self._transport.write(self._encode(command.line))

    def _encode(self, line: str) -> bytes:
        return line.encode(self.encoding, errors="surrogateescape") + Lines.TERMINATOR

    def _check_payload(self) -> None:
        if self._payload is not None and not self._payload.done:
            raise SessionStateError(
                "Previous multi-line response has not been consumed"
            )

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SessionStateError("A command is already in progress")

        try:
            if self._passthrough:
                raise SessionStateError("Channel is in passthrough mode")
            self._check_payload()
            yield
        finally:
            self._lock.release()
