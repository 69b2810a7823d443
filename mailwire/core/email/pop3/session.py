"""POP3 session: greeting, CAPA, STLS, login and mailbox commands."""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Tuple

from mailwire.core.email.auth import AuthMode, Authenticator, extract_challenge
from mailwire.core.email.constants import Dialect
from mailwire.core.email.protocol import Payload, Response
from mailwire.core.email.session import MailSession
from mailwire.utils.errors import ProtocolViolationError
from mailwire.utils.logging import get_logger

from .constants import DEFAULT_ENCODING, POP3Commands, POP3Ports

logger = get_logger(__name__)


@dataclass(frozen=True)
class MailboxItem:
    """One message in the maildrop: 1-based ordinal and size in octets."""

    id: int
    size: int


@dataclass
class MailboxSummary:
    """Read-only listing collected from a LIST response."""

    items: List[MailboxItem] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total_bytes(self) -> int:
        return sum(item.size for item in self.items)

    @classmethod
    def parse(cls, lines: Iterable[str]) -> "MailboxSummary":
        """Build a summary from "id size" scan lines.

        Raises:
            ProtocolViolationError: If a line is not two integers
        """
        items = []
        for line in lines:
            fields = line.split()
            try:
                items.append(MailboxItem(int(fields[0]), int(fields[1])))
            except (IndexError, ValueError) as e:
                raise ProtocolViolationError(
                    f"Malformed scan listing line: {line!r}", details={"line": line}
                ) from e

        return cls(items)


class POP3Session(MailSession):
    """Client side of one POP3 conversation."""

    dialect = Dialect.POP3
    default_port = POP3Ports.POP3
    default_tls_port = POP3Ports.POP3_SSL
    starttls_command = POP3Commands.STLS
    default_encoding = DEFAULT_ENCODING

    def __init__(self, host: str, port: Optional[int] = None, **kwargs):
        super().__init__(host, port, **kwargs)
        self.capability_set: FrozenSet[str] = frozenset()

    @property
    def challenge(self) -> Optional[str]:
        """APOP challenge from the greeting, if the server offered one."""
        if self.greeting is None:
            return None
        return extract_challenge(self.greeting)

    def capabilities(self) -> FrozenSet[str]:
        """Query CAPA. A server without CAPA yields an empty set."""
        response = self.send(POP3Commands.CAPA)
        if not response.ok:
            logger.debug(f"CAPA not supported by {self.host}: {response.status_line}")
            self.capability_set = frozenset()
            return self.capability_set

        response.payload = list(self.channel.open_payload())
        self.capability_set = frozenset(line.strip() for line in response.payload)
        return self.capability_set

    def login(
        self,
        username: Optional[str],
        password: Optional[str],
        use_apop: bool = False,
        prompter=None,
    ) -> AuthMode:
        """Authenticate with APOP or USER/PASS (see auth.Authenticator)."""
        return Authenticator(self, prompter).authenticate(
            username, password, challenge=self.challenge, use_challenge=use_apop
        )

    def stat(self) -> Tuple[int, int]:
        """Return (message count, maildrop size in octets)."""
        response = self.expect("STAT", POP3Commands.STAT)
        try:
            return int(response.fields[1]), int(response.fields[2])
        except (IndexError, ValueError) as e:
            raise ProtocolViolationError(
                f"Malformed STAT response: {response.status_line!r}",
                details={"response": response.lines},
            ) from e

    def list(self) -> MailboxSummary:
        """Enumerate the maildrop with LIST."""
        response = self.expect("LIST", POP3Commands.LIST)
        response.payload = list(self.channel.open_payload())
        summary = MailboxSummary.parse(response.payload)
        logger.info(
            f"Found {summary.count} mail, {summary.total_bytes} bytes total",
            extra={"server": self.host},
        )
        return summary

    def retrieve(self, item_id: int) -> Payload:
        """Issue RETR and return the message lines, dot-unstuffed.

        The payload must be consumed before the next command.
        """
        self.expect("RETR", POP3Commands.RETR, str(item_id))
        return self.channel.open_payload()

    def top(self, item_id: int, lines: int = 0) -> Payload:
        """Issue TOP: headers plus the first ``lines`` body lines."""
        self.expect("TOP", POP3Commands.TOP, str(item_id), str(lines))
        return self.channel.open_payload()

    def delete(self, item_id: int) -> Response:
        """Mark a message for deletion at QUIT."""
        return self.expect("DELE", POP3Commands.DELE, str(item_id))

    def reset(self) -> Response:
        """Undo all deletion marks (RSET)."""
        return self.expect("RSET", POP3Commands.RSET)

    def noop(self) -> Response:
        return self.expect("NOOP", POP3Commands.NOOP)
