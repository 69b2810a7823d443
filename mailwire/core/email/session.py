"""Shared session object for the POP3 and SMTP dialects.

A session owns exactly one transport at a time, reached only through its
CommandChannel. A TLS upgrade rebinds the channel to the new transport; the
plaintext transport is detached and never used again.
"""

from typing import Callable, Optional, Sequence

from mailwire.utils.errors import (
    AuthenticationError,
    CommandRejectedError,
    FileSystemError,
    MailwireError,
    SessionStateError,
    UpgradeUnavailableError,
)
from mailwire.utils.logging import get_logger, log_call

from .constants import Dialect, Timeouts
from .protocol import Command, CommandChannel, Observer, Response
from .transport import Transport
from .upgrade import TransportUpgrade, UpgradePolicy, UpgradeState

logger = get_logger(__name__)

TransportFactory = Callable[..., Transport]

# Failures after which the server is still listening and gets a QUIT
QUIT_ON = (
    CommandRejectedError,
    AuthenticationError,
    UpgradeUnavailableError,
    FileSystemError,
)


class MailSession:
    """Base class for a live conversation with a mail server.

    Subclasses set the dialect, default ports, start-TLS command and the rule
    for accepting the greeting.
    """

    dialect: Dialect
    default_port: int
    default_tls_port: int
    starttls_command: str
    default_encoding = "utf-8"

    def __init__(
        self,
        host: str,
        port: Optional[int] = None,
        *,
        implicit_tls: bool = False,
        allow_insecure_cert: bool = False,
        encoding: Optional[str] = None,
        timeout: Optional[float] = Timeouts.CONNECT,
        read_timeout: Optional[float] = Timeouts.READ,
        observer: Optional[Observer] = None,
        transport_factory: TransportFactory = Transport.open,
    ):
        """Prepare an unconnected session.

        Args:
            host: Server host name
            port: Server port; the dialect default when None
            implicit_tls: Encrypt right after connecting (e.g. ports 995/465)
            allow_insecure_cert: Skip certificate validation (explicit opt-in)
            encoding: Character encoding for commands and responses
            timeout: Connect timeout in seconds
            read_timeout: Per-read timeout in seconds
            observer: Receives every sent and received line (PASS redacted)
            transport_factory: Opens the transport; replaceable for tests
        """
        self.host = host
        self.implicit_tls = implicit_tls
        self.port = port or (self.default_tls_port if implicit_tls else self.default_port)
        self.allow_insecure_cert = allow_insecure_cert
        self.encoding = encoding or self.default_encoding
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.observer = observer
        self._transport_factory = transport_factory
        self._channel: Optional[CommandChannel] = None
        self._last_sequence = 0

        self.greeting: Optional[Response] = None
        self.authenticated = False
        self.auth_mode = None
        self.security_degraded = False
        self.tls = TransportUpgrade(self, self.starttls_command, self._accepts_starttls)

    ## State

    @property
    def connected(self) -> bool:
        return self._channel is not None

    @property
    def channel(self) -> CommandChannel:
        if self._channel is None:
            raise SessionStateError(
                "Session is not connected", details={"server": self.host}
            )
        return self._channel

    @property
    def encrypted(self) -> bool:
        return self._channel is not None and self._channel.transport.encrypted

    @property
    def sequence(self) -> int:
        """Number of commands sent on this session."""
        if self._channel is not None:
            return self._channel.sequence
        return self._last_sequence

    ## Connection

    @log_call
    def connect(self) -> Response:
        """Open the transport and read the greeting.

        Raises:
            ConnectionFailedError: If the server cannot be reached
            CommandRejectedError: If the greeting is not positive
        """
        if self._channel is not None:
            raise SessionStateError("Session is already connected")

        transport = self._transport_factory(
            self.host, self.port, timeout=self.timeout, read_timeout=self.read_timeout
        )

        try:
            if self.implicit_tls:
                transport = transport.upgrade(self.host, self.allow_insecure_cert)
                logger.info(f"Connected SSL channel to {self.host}")

            self._channel = CommandChannel(
                transport, self.dialect, self.encoding, self.observer
            )
            greeting = self._channel.read_response()

        except MailwireError:
            transport.close()
            self._channel = None
            raise

        self.greeting = greeting
        if not self._accepts_greeting(greeting):
            self.close()
            raise CommandRejectedError(
                "greeting",
                response_lines=greeting.lines,
                message=f"Unknown response from server: {greeting.status_line}",
            )

        logger.info(f"Connected to {self.dialect.value} server {self.host}:{self.port}")
        return greeting

    def start_tls(self, policy: UpgradePolicy, offered: bool = True) -> UpgradeState:
        """Run the transport-upgrade state machine (see upgrade.TransportUpgrade)."""
        return self.tls.negotiate(policy, offered=offered)

    def swap_transport(self, transport: Transport) -> None:
        """Rebind the channel to an upgraded transport."""
        self.channel.bind(transport)

    ## Commands

    def send(self, *tokens: str) -> Response:
        """Send one command and return its complete response."""
        return self.channel.send(*tokens)

    def execute(self, command: Command) -> Response:
        return self.channel.execute(command)

    def expect(
        self, stage: str, *tokens: str, codes: Optional[Sequence[int]] = None
    ) -> Response:
        """Send a command that has to succeed.

        Args:
            stage: Name reported when the command is rejected
            tokens: Command tokens
            codes: Accepted reply codes (SMTP); any success status when None

        Raises:
            CommandRejectedError: On any other terminal status
        """
        command = Command.build(*tokens)
        response = self.channel.execute(command)

        accepted = response.has_code(*codes) if codes else response.ok
        if not accepted:
            raise CommandRejectedError(
                stage, command=command.echo(), response_lines=response.lines
            )

        return response

    ## Termination

    def quit(self) -> Response:
        """Send QUIT and close the transport."""
        try:
            return self.channel.send("QUIT")
        finally:
            self.close()

    def abort(self) -> None:
        """Attempt a graceful QUIT after a failure, then close.

        Errors from the QUIT exchange are logged, never raised, so the failure
        that caused the abort is the one the caller sees.
        """
        if self._channel is None:
            return

        try:
            self._channel.send("QUIT")
        except MailwireError as e:
            logger.debug(f"QUIT after failure did not complete: {e.message}")
        finally:
            self.close()

    def close(self) -> None:
        """Close the transport without a QUIT; safe from another thread."""
        channel, self._channel = self._channel, None
        if channel is not None:
            self._last_sequence = channel.sequence
            channel.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    ## Dialect hooks

    def _accepts_greeting(self, response: Response) -> bool:
        return response.ok

    def _accepts_starttls(self, response: Response) -> bool:
        return response.ok
