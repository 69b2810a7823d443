"""Shared constants for the mail protocol engine.

Centralised configuration for:
- Protocol dialects and status markers
- Timeout settings
- Line limits and terminators

These constants keep the transport, reader and session layers consistent.
Adjust the timeouts for slow or unreliable servers.
"""

from enum import Enum


class Dialect(str, Enum):
    """Line-oriented mail protocols understood by the engine."""

    POP3 = "POP3"
    SMTP = "SMTP"


class StatusClass(str, Enum):
    """Outcome carried by a terminal status line."""

    SUCCESS = "success"
    INTERMEDIATE = "intermediate"
    FAILURE = "failure"


class Timeouts:
    """Timeout settings for network operations (in seconds)."""

    CONNECT = 30.0
    READ = 60.0


class Lines:
    """Wire-level line handling."""

    TERMINATOR = b"\r\n"
    PAYLOAD_END = "."
    # RFC 5321 allows 1000 octets per line; leave room for lenient servers
    MAX_LENGTH = 8192
    RECV_CHUNK = 16384


REDACTED_ARGUMENT = "(password)"
