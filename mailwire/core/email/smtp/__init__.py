"""SMTP dialect: session and message submission."""

from .session import SMTPSession
from .submission import (
    MessageSource,
    MessageSubmission,
    SubmissionOptions,
    SubmissionResult,
    derive_recipients,
    derive_sender,
)

__all__ = [
    "SMTPSession",
    "MessageSource",
    "MessageSubmission",
    "SubmissionOptions",
    "SubmissionResult",
    "derive_recipients",
    "derive_sender",
]
