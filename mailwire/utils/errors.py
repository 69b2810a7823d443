"""Centralized error handling module."""

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    PROTOCOL = "protocol"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    FILE_SYSTEM = "file_system"
    STATE = "state"
    UNKNOWN = "unknown"


## Custom Exceptions


class MailwireError(Exception):
    """Base exception for all mailwire errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise MailwireError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)


## Network Errors


class NetworkError(MailwireError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    user_message = "A network error occurred"


class ConnectionFailedError(NetworkError):
    """Socket-level failure; fatal to the session that owns the transport."""

    user_message = "Connection failed"


class NetworkTimeoutError(ConnectionFailedError):
    """Exception for connect or read timeouts."""

    user_message = "The connection timed out"


## Protocol Errors


class ProtocolError(MailwireError):
    """Base exception for mail protocol errors."""

    category = ErrorCategory.PROTOCOL
    user_message = "A protocol error occurred"


class ProtocolViolationError(ProtocolError):
    """Malformed line, unexpected line shape or premature end of stream."""

    user_message = "The server violated the protocol"


class CommandRejectedError(ProtocolError):
    """A command that had to succeed got a negative terminal status."""

    user_message = "The server rejected a command"

    def __init__(
        self,
        stage: str,
        command: Optional[str] = None,
        response_lines: Optional[Sequence[str]] = None,
        message: Optional[str] = None,
    ):
        self.stage = stage
        self.command = command
        self.response_lines: List[str] = list(response_lines or [])
        status = self.response_lines[-1] if self.response_lines else "no response"
        super().__init__(
            message or f"{stage} rejected by server: {status}",
            details={
                "stage": stage,
                "command": command,
                "response": self.response_lines,
            },
        )


class UpgradeUnavailableError(ProtocolError):
    """Encryption was required but the server would not upgrade the channel."""

    user_message = "The server does not support TLS"


## Authentication Errors


class AuthenticationError(MailwireError):
    """Base exception for authentication-related errors."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "An authentication error occurred"


class AuthUnsupportedError(AuthenticationError):
    """The requested authentication mode is not offered by the server."""

    user_message = "Authentication mode not supported by server"


class AuthRejectedError(AuthenticationError):
    """The server rejected the user name, password or digest."""

    user_message = "Authentication rejected by server"

    def __init__(
        self,
        stage: str,
        command: Optional[str] = None,
        response_lines: Optional[Sequence[str]] = None,
        message: Optional[str] = None,
    ):
        self.stage = stage
        self.command = command
        self.response_lines: List[str] = list(response_lines or [])
        super().__init__(
            message or f"{stage} not accepted",
            details={
                "stage": stage,
                "command": command,
                "response": self.response_lines,
            },
        )


class MissingCredentialsError(AuthenticationError):
    """Exception for missing login credentials."""

    user_message = "Credentials not configured"


## Configuration Errors


class ConfigurationError(MailwireError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## File System Errors


class FileSystemError(MailwireError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


class MessageExistsError(FileSystemError):
    """A retrieved message would overwrite an existing file."""

    user_message = "Output file already exists"


## Session State Errors


class SessionStateError(MailwireError):
    """A session method was used in a state that does not allow it."""

    category = ErrorCategory.STATE
    user_message = "Invalid session state"


class OperationCancelledError(MailwireError):
    """The user declined to continue at a prompt."""

    category = ErrorCategory.STATE
    user_message = "Cancelled"


## Utility Functions


def iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Walk an exception and the chain of exceptions that caused it."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def format_error_message(error: BaseException, separator: str = " -> ") -> str:
    """Format an error and its causes as a single line for display."""
    messages = []
    for exc in iter_causes(error):
        text = exc.message if isinstance(exc, MailwireError) else str(exc)
        if text and text not in messages:
            messages.append(text)

    if not messages:
        return "An unexpected error occurred - check logs for details."

    return separator.join(messages)
