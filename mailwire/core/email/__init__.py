"""Mail protocol engine.

This package provides:
- Transport: TCP stream that can be upgraded to TLS in place
- CommandChannel / ResponseReader: command/response cycle per dialect
- TransportUpgrade: the STLS/STARTTLS state machine
- Authenticator: APOP and USER/PASS login
- POP3 and SMTP sessions plus the drivers built on them
"""

from .auth import AuthMode, Authenticator, challenge_digest, extract_challenge
from .constants import Dialect, StatusClass
from .pop3 import (
    InteractiveSession,
    MaildropSink,
    MailboxItem,
    MailboxRetrieval,
    MailboxSummary,
    MemorySink,
    POP3Session,
    RetrievalOptions,
    RetrievalResult,
)
from .protocol import Command, CommandChannel, Payload, Response, ResponseReader
from .session import MailSession
from .smtp import (
    MessageSource,
    MessageSubmission,
    SMTPSession,
    SubmissionOptions,
    SubmissionResult,
)
from .transport import TLSTransport, Transport
from .upgrade import TransportUpgrade, UpgradePolicy, UpgradeState

__all__ = [
    "AuthMode",
    "Authenticator",
    "challenge_digest",
    "extract_challenge",
    "Dialect",
    "StatusClass",
    "InteractiveSession",
    "MaildropSink",
    "MailboxItem",
    "MailboxRetrieval",
    "MailboxSummary",
    "MemorySink",
    "POP3Session",
    "RetrievalOptions",
    "RetrievalResult",
    "Command",
    "CommandChannel",
    "Payload",
    "Response",
    "ResponseReader",
    "MailSession",
    "MessageSource",
    "MessageSubmission",
    "SMTPSession",
    "SubmissionOptions",
    "SubmissionResult",
    "TLSTransport",
    "Transport",
    "TransportUpgrade",
    "UpgradePolicy",
    "UpgradeState",
]
