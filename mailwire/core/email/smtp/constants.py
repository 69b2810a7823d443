"""SMTP constants and configuration values."""


class SMTPResponse:
    """SMTP response codes the session checks for."""

    # 2xx Success
    SERVICE_READY = 220  # Greeting; also the go-ahead for STARTTLS
    OK = 250  # Requested mail action okay, completed
    USER_NOT_LOCAL = 251  # User not local; will forward

    # 3xx Intermediate
    START_MAIL = 354  # Start mail input; end with <CRLF>.<CRLF>


class SMTPCommands:
    """Command verbs used by the session."""

    EHLO = "EHLO"
    HELO = "HELO"
    STARTTLS = "STARTTLS"
    MAIL = "MAIL"
    RCPT = "RCPT"
    DATA = "DATA"


class SMTPPorts:
    """Standard SMTP port numbers."""

    # Legacy/relay port, STARTTLS possible
    SMTP = 25

    SUBMISSION_SSL = 465  # Implicit TLS/SSL


# Replies accepted for each envelope step
RCPT_ACCEPTED = (SMTPResponse.OK, SMTPResponse.USER_NOT_LOCAL)

DEFAULT_ENCODING = "utf-8"
