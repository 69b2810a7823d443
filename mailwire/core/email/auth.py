"""POP3 login: APOP challenge-response or USER/PASS.

APOP digest: lowercase hex MD5 over ``challenge + password`` encoded with the
session encoding. The challenge is the ``<...>`` token of the greeting.

Neither mode retries. A rejection raises AuthRejectedError and the caller
decides whether to prompt again or give up.
"""

import hashlib
from enum import Enum
from typing import TYPE_CHECKING, Optional

from mailwire.utils.errors import (
    AuthRejectedError,
    AuthUnsupportedError,
    MissingCredentialsError,
)
from mailwire.utils.logging import get_logger, log_call

from .protocol import Command, Response

if TYPE_CHECKING:
    from mailwire.ui.components.prompts import Prompter

    from .session import MailSession

logger = get_logger(__name__)


class AuthMode(str, Enum):
    CLEARTEXT = "cleartext"
    CHALLENGE = "challenge"


def extract_challenge(greeting: Response) -> Optional[str]:
    """Return the ``<...>`` token of a greeting, if the server sent one."""
    for token in greeting.fields:
        if len(token) >= 2 and token.startswith("<") and token.endswith(">"):
            return token
    return None


def challenge_digest(challenge: str, password: str, encoding: str = "utf-8") -> str:
    """Compute the APOP digest for a challenge and password."""
    data = (challenge + password).encode(encoding)
    return hashlib.md5(data).hexdigest()


class Authenticator:
    """Runs one authentication attempt on a connected POP3 session."""

    def __init__(self, session: "MailSession", prompter: Optional["Prompter"] = None):
        self.session = session
        self.prompter = prompter

    @log_call
    def authenticate(
        self,
        username: Optional[str],
        password: Optional[str],
        challenge: Optional[str] = None,
        use_challenge: bool = False,
    ) -> AuthMode:
        """Log in with the requested mode.

        Args:
            username: Account name, prompted for when None
            password: Password, prompted for when None
            challenge: Greeting challenge token, if any
            use_challenge: Use APOP instead of USER/PASS

        Returns:
            The mode that succeeded

        Raises:
            AuthUnsupportedError: APOP requested without a challenge
            AuthRejectedError: The server refused the credentials
            MissingCredentialsError: Nothing supplied and nothing to prompt with
        """
        if use_challenge and challenge is None:
            raise AuthUnsupportedError(
                "APOP requested, but server provides no challenge",
                details={"server": self.session.host},
            )

        if username is None:
            username = self._ask("prompt_line", "User name")
        if password is None:
            password = self._ask("prompt_password", "Password")

        if use_challenge:
            digest = challenge_digest(challenge, password, self.session.encoding)
            self._expect("APOP", Command.build("APOP", username, digest))
            mode = AuthMode.CHALLENGE
        else:
            self._expect("USER", Command.build("USER", username))
            self._expect("PASS", Command.build("PASS", password))
            mode = AuthMode.CLEARTEXT

        self.session.authenticated = True
        self.session.auth_mode = mode
        logger.info(f"Authenticated as {username} ({mode.value})")
        return mode

    def _expect(self, stage: str, command: Command) -> Response:
        response = self.session.execute(command)
        if not response.ok:
            raise AuthRejectedError(
                stage,
                command=command.echo(),
                response_lines=response.lines,
                message={
                    "APOP": "APOP authentication failed",
                    "USER": "User name not accepted",
                    "PASS": "Password not accepted",
                }[stage],
            )
        return response

    def _ask(self, method: str, message: str) -> str:
        if self.prompter is None:
            raise MissingCredentialsError(f"{message} not configured")

        value = getattr(self.prompter, method)(message)
        if value is None:
            raise MissingCredentialsError(f"{message} not provided")
        return value
