"""Mailbox retrieval: download every message, optionally deleting it.

Flow::

    greeting -> [CAPA] -> [STLS] -> APOP | USER/PASS -> LIST
             -> for each item: RETR -> sink -> [DELE]
             -> QUIT

A rejected command stops the loop, QUIT is attempted and the error naming
the failed stage propagates. Messages stored before the failure stay stored
and messages already marked for deletion are removed by the server at QUIT.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Protocol

from mailwire.core.email.auth import AuthMode
from mailwire.core.email.session import QUIT_ON
from mailwire.core.email.upgrade import UpgradePolicy, UpgradeState
from mailwire.utils.errors import FileSystemError, MessageExistsError
from mailwire.utils.logging import get_logger, log_call, log_event

from .session import MailboxItem, MailboxSummary, POP3Session

logger = get_logger(__name__)

## Sinks


class MessageWriter(Protocol):
    """Receives the lines of one message as they arrive."""

    def write_line(self, line: str) -> None: ...

    def commit(self) -> Optional[str]: ...

    def discard(self) -> None: ...


class MessageSink(Protocol):
    """Destination for retrieved messages."""

    def begin(self, item: MailboxItem) -> MessageWriter: ...


class _FileWriter:
    def __init__(self, path: Path, handle):
        self.path = path
        self._handle = handle

    def write_line(self, line: str) -> None:
        try:
            self._handle.write(line + "\r\n")
        except OSError as e:
            raise FileSystemError(
                f"Cannot write {self.path.name}", details={"path": str(self.path)}
            ) from e

    def commit(self) -> str:
        self._handle.close()
        return str(self.path)

    def discard(self) -> None:
        self._handle.close()
        try:
            self.path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove partial file {self.path}: {e}")


class MaildropSink:
    """Writes each message to ``<user>@<server>[<id>].eml``.

    Existing files are never overwritten. Lines are CRLF-terminated and
    encoded with the session encoding; undecodable octets pass through
    unchanged.
    """

    def __init__(self, directory: Path, username: str, server: str, encoding: str):
        self.directory = Path(directory)
        self.username = username
        self.server = server
        self.encoding = encoding

    def filename(self, item: MailboxItem) -> str:
        return f"{self.username}@{self.server}[{item.id}].eml"

    def begin(self, item: MailboxItem) -> _FileWriter:
        path = self.directory / self.filename(item)
        logger.info(f"Creating file {path.name}")

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            handle = open(
                path,
                "x",
                encoding=self.encoding,
                errors="surrogateescape",
                newline="",
            )
        except FileExistsError as e:
            raise MessageExistsError(
                f"File {path.name} already exists", details={"path": str(path)}
            ) from e
        except OSError as e:
            raise FileSystemError(
                f"Cannot create {path.name}", details={"path": str(path)}
            ) from e

        return _FileWriter(path, handle)


class _MemoryWriter:
    def __init__(self, sink: "MemorySink", item: MailboxItem):
        self._sink = sink
        self._item = item
        self.lines: List[str] = []

    def write_line(self, line: str) -> None:
        self.lines.append(line)

    def commit(self) -> None:
        self._sink.messages[self._item.id] = self.lines

    def discard(self) -> None:
        self.lines = []


class MemorySink:
    """Keeps retrieved messages in memory, keyed by mailbox id."""

    def __init__(self):
        self.messages: Dict[int, List[str]] = {}

    def begin(self, item: MailboxItem) -> _MemoryWriter:
        return _MemoryWriter(self, item)


## Driver


@dataclass
class RetrievalOptions:
    username: Optional[str] = None
    password: Optional[str] = None
    upgrade_policy: UpgradePolicy = UpgradePolicy.NONE
    use_apop: bool = False
    keep_on_server: bool = False
    query_capabilities: bool = False


@dataclass
class RetrievedMessage:
    item: MailboxItem
    lines: int
    location: Optional[str] = None


@dataclass
class RetrievalResult:
    """What one retrieval session did."""

    server: str
    capabilities: FrozenSet[str] = frozenset()
    upgrade_state: UpgradeState = UpgradeState.PLAIN
    security_degraded: bool = False
    auth_mode: Optional[AuthMode] = None
    summary: Optional[MailboxSummary] = None
    retrieved: List[RetrievedMessage] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)
    commands_sent: int = 0

    @property
    def empty(self) -> bool:
        return self.summary is not None and self.summary.count == 0


class MailboxRetrieval:
    """Runs one complete download session against a POP3 server."""

    def __init__(
        self,
        session: POP3Session,
        sink: MessageSink,
        options: Optional[RetrievalOptions] = None,
        prompter=None,
    ):
        self.session = session
        self.sink = sink
        self.options = options or RetrievalOptions()
        self.prompter = prompter

    @log_call
    def run(self) -> RetrievalResult:
        """Connect, download and disconnect.

        Returns:
            RetrievalResult describing the session

        Raises:
            MailwireError: The first failure; the session is closed either way
        """
        session = self.session
        options = self.options
        result = RetrievalResult(server=session.host)

        try:
            session.connect()

            if options.query_capabilities:
                result.capabilities = session.capabilities()

            result.upgrade_state = session.start_tls(options.upgrade_policy)
            result.security_degraded = session.security_degraded

            result.auth_mode = session.login(
                options.username,
                options.password,
                use_apop=options.use_apop,
                prompter=self.prompter,
            )

            result.summary = session.list()
            if result.empty:
                logger.info(f"No mail on {session.host}")

            for item in result.summary.items:
                result.retrieved.append(self._retrieve(item))

                if not options.keep_on_server:
                    logger.info(f"Deleting mail {item.id} on POP server")
                    session.delete(item.id)
                    result.deleted.append(item.id)

            session.quit()

        except QUIT_ON as e:
            logger.error(f"Retrieval from {session.host} stopped: {e.message}")
            session.abort()
            raise

        finally:
            session.close()
            result.commands_sent = session.sequence

        return result

    def _retrieve(self, item: MailboxItem) -> RetrievedMessage:
        writer = self.sink.begin(item)
        logger.info(f"Receiving mail {item.id}")

        try:
            payload = self.session.retrieve(item.id)
            for line in payload:
                writer.write_line(line)
        except BaseException:
            writer.discard()
            raise

        location = writer.commit()
        log_event(
            "message_retrieved",
            f"Retrieved mail {item.id} ({item.size} bytes)",
            server=self.session.host,
            message_id=item.id,
        )
        return RetrievedMessage(item, payload.lines_read, location)
