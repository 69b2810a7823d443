"""POP3 dialect: session, mailbox retrieval and interactive driver."""

from .interactive import InteractiveSession, ServerListener
from .retrieval import (
    MaildropSink,
    MailboxRetrieval,
    MemorySink,
    RetrievalOptions,
    RetrievalResult,
)
from .session import MailboxItem, MailboxSummary, POP3Session

__all__ = [
    "InteractiveSession",
    "ServerListener",
    "MaildropSink",
    "MailboxRetrieval",
    "MemorySink",
    "RetrievalOptions",
    "RetrievalResult",
    "MailboxItem",
    "MailboxSummary",
    "POP3Session",
]
