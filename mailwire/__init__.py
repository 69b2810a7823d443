"""mailwire: line-oriented POP3/SMTP session engine with a small CLI.

Public API:
    POP3Session, MailboxRetrieval -> Download a maildrop
    SMTPSession, MessageSubmission -> Submit one message
    UpgradePolicy -> How hard to insist on STLS/STARTTLS

Example:
    >>> from mailwire import POP3Session, MailboxRetrieval, MemorySink, RetrievalOptions
    >>> session = POP3Session("pop.example.com")
    >>> options = RetrievalOptions(username="alice", password="secret", keep_on_server=True)
    >>> result = MailboxRetrieval(session, MemorySink(), options).run()
"""

from .core.email import (
    MailboxRetrieval,
    MemorySink,
    MessageSource,
    MessageSubmission,
    POP3Session,
    RetrievalOptions,
    SMTPSession,
    SubmissionOptions,
    UpgradePolicy,
)

__version__ = "0.1.0"

__all__ = [
    "MailboxRetrieval",
    "MemorySink",
    "MessageSource",
    "MessageSubmission",
    "POP3Session",
    "RetrievalOptions",
    "SMTPSession",
    "SubmissionOptions",
    "UpgradePolicy",
]
