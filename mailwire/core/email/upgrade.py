"""In-place plaintext to TLS transition (STLS / STARTTLS).

States::

    PLAIN -> NEGOTIATING -> UPGRADED
    PLAIN -> NEGOTIATING -> DECLINED

The machine only runs when the caller asks for encryption in place. Sessions
that are encrypted from the first byte (implicit TLS ports) never enter it,
and a session that is already encrypted refuses a second negotiation without
touching the wire.
"""

from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from mailwire.utils.errors import SessionStateError, UpgradeUnavailableError
from mailwire.utils.logging import get_logger, log_event

from .protocol import Response

if TYPE_CHECKING:
    from .session import MailSession

logger = get_logger(__name__)


class UpgradePolicy(str, Enum):
    """How hard the caller insists on encrypting a plaintext session."""

    NONE = "none"
    BEST_EFFORT = "best_effort"
    REQUIRED = "required"

    @property
    def requested(self) -> bool:
        return self is not UpgradePolicy.NONE


class UpgradeState(str, Enum):
    PLAIN = "plain"
    NEGOTIATING = "negotiating"
    UPGRADED = "upgraded"
    DECLINED = "declined"


class TransportUpgrade:
    """Drives the start-TLS command and swaps the session transport."""

    def __init__(
        self,
        session: "MailSession",
        command: str,
        accept: Callable[[Response], bool],
    ):
        """Bind the state machine to a session.

        Args:
            session: Session whose transport gets replaced
            command: Dialect command that starts the upgrade
            accept: Decides whether the server's reply allows the handshake
        """
        self.session = session
        self.command = command
        self._accept = accept
        self.state = UpgradeState.PLAIN
        self.response: Optional[Response] = None

    def negotiate(self, policy: UpgradePolicy, offered: bool = True) -> UpgradeState:
        """Try to encrypt the session in place.

        Args:
            policy: NONE leaves the session untouched
            offered: False when the server did not advertise the extension;
                the command is then not sent at all

        Returns:
            UPGRADED, or DECLINED for a best-effort policy (the session then
            carries ``security_degraded = True``), or PLAIN for policy NONE

        Raises:
            SessionStateError: If the session is already encrypted or mid-upgrade
            UpgradeUnavailableError: If the policy is REQUIRED and the server declined
        """
        if not policy.requested:
            return self.state

        if self.state in (UpgradeState.NEGOTIATING, UpgradeState.UPGRADED) or (
            self.session.encrypted
        ):
            raise SessionStateError(
                "TLS cannot be negotiated again on this session",
                details={"state": self.state.value, "command": self.command},
            )

        self.state = UpgradeState.NEGOTIATING
        self.response = None

        if offered:
            self.response = self.session.send(self.command)
            if self._accept(self.response):
                transport = self.session.channel.transport.upgrade(
                    self.session.host, self.session.allow_insecure_cert
                )
                self.session.swap_transport(transport)
                self.state = UpgradeState.UPGRADED
                log_event(
                    "transport_upgraded",
                    f"Added TLS layer to {self.session.host}",
                    server=self.session.host,
                )
                return self.state

        self.state = UpgradeState.DECLINED
        reason = (
            self.response.status_line
            if self.response is not None
            else f"{self.command} not advertised"
        )

        if policy is UpgradePolicy.REQUIRED:
            raise UpgradeUnavailableError(
                f"Server does not support {self.command}",
                details={
                    "command": self.command,
                    "reason": reason,
                    "server": self.session.host,
                },
            )

        self.session.security_degraded = True
        logger.warning(
            f"Server does not support {self.command}; continuing in plaintext",
            extra={"server": self.session.host},
        )
        log_event(
            "security_degraded",
            f"{self.session.host} declined {self.command}: {reason}",
            level="WARNING",
            server=self.session.host,
        )
        return self.state
