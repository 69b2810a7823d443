"""POP3 constants and configuration values."""


class POP3Ports:
    """Standard POP3 port numbers."""

    POP3 = 110  # Plain, STLS upgrade possible
    POP3_SSL = 995  # Implicit TLS


class POP3Commands:
    """Command verbs used by the session."""

    CAPA = "CAPA"
    STLS = "STLS"
    STAT = "STAT"
    LIST = "LIST"
    RETR = "RETR"
    TOP = "TOP"
    DELE = "DELE"
    RSET = "RSET"
    NOOP = "NOOP"
    QUIT = "QUIT"


# Windows ANSI code page; mail is read and written in it byte for byte
DEFAULT_ENCODING = "cp1252"

# Commands the interactive shell offers for completion
INTERACTIVE_COMMANDS = [
    "CAPA",
    "STAT",
    "LIST",
    "UIDL",
    "TOP",
    "RETR",
    "DELE",
    "RSET",
    "NOOP",
    "QUIT",
]
