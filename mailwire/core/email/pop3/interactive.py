"""Interactive POP3 session.

The driver performs the handshake itself (greeting, CAPA, STLS, login, LIST)
and then hands the connection to the user: typed lines go out unchanged and
everything the server says is read by a ServerListener thread and delivered
through a queue. The listener is started only after LIST completed, so it
never competes with the driver's own reads, and QUIT joins it.
"""

import queue
import threading
from typing import FrozenSet, Optional

from mailwire.core.email.protocol import Command, ResponseReader
from mailwire.core.email.session import QUIT_ON
from mailwire.core.email.upgrade import UpgradePolicy, UpgradeState
from mailwire.utils.errors import (
    AuthUnsupportedError,
    MailwireError,
    OperationCancelledError,
    SessionStateError,
    UpgradeUnavailableError,
)
from mailwire.utils.logging import get_logger, log_call

from .constants import POP3Commands
from .session import MailboxSummary, POP3Session

logger = get_logger(__name__)

# Put on the queue once the server side is gone
END_OF_STREAM = None


class ServerListener(threading.Thread):
    """Reads server lines until the stream ends and queues them."""

    def __init__(self, reader: ResponseReader, messages: queue.Queue):
        super().__init__(name="pop3-listener", daemon=True)
        self.reader = reader
        self.messages = messages
        self.error: Optional[MailwireError] = None

    def run(self):
        try:
            while True:
                line = self.reader.read_line()
                if line is None:
                    break
                self.messages.put(line)

        except MailwireError as e:
            # Closing the transport from the main thread ends up here
            self.error = e
            logger.debug(f"Listener stopped: {e.message}")

        finally:
            self.messages.put(END_OF_STREAM)


class InteractiveSession:
    """Hands an authenticated POP3 session over to a user."""

    def __init__(
        self,
        session: POP3Session,
        prompter,
        username: Optional[str] = None,
        password: Optional[str] = None,
        upgrade_policy: Optional[UpgradePolicy] = None,
        use_apop: bool = False,
        join_timeout: float = 10.0,
    ):
        """Prepare the driver.

        Args:
            session: Unconnected POP3 session
            prompter: Asks for credentials and yes/no decisions
            username: Account name, prompted for when None
            password: Password, prompted for when None
            upgrade_policy: STLS policy; the user is asked when None
            use_apop: Insist on APOP (it is used anyway when offered)
            join_timeout: Seconds to wait for the listener after QUIT
        """
        self.session = session
        self.prompter = prompter
        self.username = username
        self.password = password
        self.upgrade_policy = upgrade_policy
        self.use_apop = use_apop
        self.join_timeout = join_timeout

        self.messages: queue.Queue = queue.Queue()
        self.listener: Optional[ServerListener] = None
        self.capabilities: FrozenSet[str] = frozenset()
        self.summary: Optional[MailboxSummary] = None

    @property
    def active(self) -> bool:
        return (
            self.listener is not None
            and self.listener.is_alive()
            and self.session.connected
        )

    @log_call
    def prepare(self) -> MailboxSummary:
        """Run the handshake up to LIST.

        An empty maildrop ends the session with QUIT; the summary then has
        no items and start() must not be called.

        Raises:
            OperationCancelledError: The user declined at a prompt
            MailwireError: Any protocol, auth or transport failure
        """
        session = self.session

        try:
            session.connect()

            challenge = session.challenge
            if self.use_apop and challenge is None:
                raise AuthUnsupportedError(
                    "APOP requested, but server provides no challenge",
                    details={"server": session.host},
                )

            self.capabilities = session.capabilities()
            self._negotiate_tls()

            if challenge is None and not session.encrypted:
                answer = self.prompter.confirm(
                    "Connection not encrypted and password hashing not supported "
                    "by server. Continue sending clear text user name and password?",
                    default=False,
                )
                if not answer:
                    raise OperationCancelledError("Clear text login declined")

            session.login(
                self.username,
                self.password,
                use_apop=challenge is not None,
                prompter=self.prompter,
            )

            self.summary = session.list()
            if not self.summary.items:
                logger.info("No mail")
                session.quit()

        except QUIT_ON + (OperationCancelledError,):
            session.abort()
            raise

        except MailwireError:
            session.close()
            raise

        return self.summary

    def start(self) -> ServerListener:
        """Switch the channel to passthrough and start the listener."""
        if self.listener is not None:
            raise SessionStateError("Interactive mode already started")

        channel = self.session.channel
        channel.begin_passthrough()

        self.listener = ServerListener(channel.reader, self.messages)
        self.listener.start()
        return self.listener

    def submit(self, line: str) -> bool:
        """Send one user line.

        Returns:
            False once QUIT was sent and the session is over
        """
        if not self.active:
            raise SessionStateError("Interactive mode is not running")

        command = Command.from_line(line)
        self.session.channel.send_raw(command)

        if command.verb == POP3Commands.QUIT:
            self._finish(wait_for_server=True)
            return False

        return True

    def close(self) -> None:
        """Drop the connection without QUIT and wait for the listener."""
        self._finish(wait_for_server=False)

    def _finish(self, wait_for_server: bool) -> None:
        listener = self.listener
        if wait_for_server and listener is not None and listener.is_alive():
            listener.join(self.join_timeout)

        self.session.close()

        if listener is not None and listener.is_alive():
            listener.join(self.join_timeout)

    def _negotiate_tls(self) -> None:
        session = self.session
        if session.encrypted:
            return

        policy = self.upgrade_policy
        if policy is None:
            answer = self.prompter.confirm(
                "Try encrypt connection using TLS?", default=True
            )
            if answer is None:
                raise OperationCancelledError("TLS decision cancelled")
            policy = UpgradePolicy.REQUIRED if answer else UpgradePolicy.NONE

        state = session.start_tls(
            UpgradePolicy.BEST_EFFORT if policy.requested else policy
        )
        if state is UpgradeState.DECLINED and policy is UpgradePolicy.REQUIRED:
            answer = self.prompter.confirm(
                "Server does not support TLS. Continue with clear text communication?",
                default=False,
            )
            if not answer:
                raise UpgradeUnavailableError(
                    "Server does not support STLS", details={"server": session.host}
                )
