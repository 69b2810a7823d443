"""
Tests for response reading, payloads and the command channel
"""
import pytest

from mailwire.core.email.constants import Dialect, StatusClass
from mailwire.core.email.protocol import (
    Command,
    CommandChannel,
    Response,
    ResponseReader,
    is_terminal_line,
    stuff_line,
    unstuff_line,
)
from mailwire.utils.errors import ProtocolViolationError, SessionStateError

from test_helpers import ScriptedServer


def make_channel(server, dialect=Dialect.POP3, observer=None):
    transport = server.factory(server.host, 110)
    return CommandChannel(transport, dialect, "utf-8", observer)


class TestTerminalLines:
    """Tests for per-dialect line classification"""

    @pytest.mark.parametrize(
        "line",
        ["+OK", "+OK ready", "-ERR no such message", "+ok lower case", "+OK\tready"],
    )
    def test_pop3_terminal(self, line):
        """Test status markers end a POP3 response"""
        assert is_terminal_line(line, Dialect.POP3)

    @pytest.mark.parametrize("line", ["+OKAY", "Hello", "", "1 120"])
    def test_pop3_not_terminal(self, line):
        """Test anything else belongs to the response in progress"""
        assert not is_terminal_line(line, Dialect.POP3)

    @pytest.mark.parametrize("line", ["250 OK", "250", "354 Start mail input"])
    def test_smtp_terminal(self, line):
        """Test a code followed by a space (or nothing) ends an SMTP reply"""
        assert is_terminal_line(line, Dialect.SMTP)

    def test_smtp_continuation(self):
        """Test a code followed by a hyphen continues the reply"""
        assert not is_terminal_line("250-PIPELINING", Dialect.SMTP)

    @pytest.mark.parametrize(
        "line", ["", "25", "OK 250", "250_x", "2x0 OK", "\u00b250 hello", "\u0662\u0665\u0660 OK"]
    )
    def test_smtp_malformed(self, line):
        """Test other SMTP shapes are protocol violations"""
        with pytest.raises(ProtocolViolationError):
            is_terminal_line(line, Dialect.SMTP)


class TestResponse:
    """Tests for response status interpretation"""

    def test_smtp_status_classes(self):
        """Test the first digit of the code decides the status class"""
        assert Response(Dialect.SMTP, ["250 OK"]).status is StatusClass.SUCCESS
        assert Response(Dialect.SMTP, ["354 go"]).status is StatusClass.INTERMEDIATE
        assert Response(Dialect.SMTP, ["550 no"]).status is StatusClass.FAILURE
        assert Response(Dialect.SMTP, ["421 bye"]).status is StatusClass.FAILURE

    def test_smtp_code_and_text(self):
        """Test code and text come from the last line"""
        response = Response(Dialect.SMTP, ["250-first", "250 Hello there"])

        assert response.code == 250
        assert response.text == "Hello there"
        assert response.continuation == ["250-first"]

    def test_pop3_status(self):
        """Test POP3 marker parsing"""
        ok = Response(Dialect.POP3, ["+OK 2 320"])
        err = Response(Dialect.POP3, ["-ERR locked"])

        assert ok.ok and ok.fields == ["+OK", "2", "320"]
        assert ok.code is None
        assert not err.ok
        assert err.text == "locked"

    def test_pop3_tab_separated_status(self):
        """Test the status marker may be followed by any whitespace"""
        response = Response(Dialect.POP3, ["+OK\t2 320"])

        assert response.ok
        assert response.text == "2 320"

    def test_smtp_code_must_be_ascii_digits(self):
        """Test a status line without an ASCII reply code is a violation"""
        response = Response(Dialect.SMTP, ["\u00b250 hello"])

        with pytest.raises(ProtocolViolationError):
            response.code

    def test_empty_response_rejected(self):
        """Test a response needs at least one line"""
        with pytest.raises(ProtocolViolationError):
            Response(Dialect.POP3, [])


class TestResponseReader:
    """Tests for assembling responses from lines"""

    def test_smtp_multiline(self):
        """Test continuation lines are collected up to the terminal line"""
        server = ScriptedServer("250-mail.example.com", "250-SIZE 100", "250 STARTTLS")
        reader = ResponseReader(server.factory(server.host, 25), Dialect.SMTP, "utf-8")

        response = reader.read_response()

        assert response.lines == ["250-mail.example.com", "250-SIZE 100", "250 STARTTLS"]

    def test_pop3_lines_before_status(self):
        """Test POP3 lines preceding the status belong to the same response"""
        server = ScriptedServer("Welcome", "to the server", "+OK ready")
        reader = ResponseReader(server.factory(server.host, 110), Dialect.POP3, "utf-8")

        response = reader.read_response()

        assert response.lines == ["Welcome", "to the server", "+OK ready"]
        assert response.ok

    def test_end_of_stream_is_violation(self):
        """Test a stream ending mid-response raises"""
        server = ScriptedServer("250-partial", None)
        reader = ResponseReader(server.factory(server.host, 25), Dialect.SMTP, "utf-8")

        with pytest.raises(ProtocolViolationError) as exc_info:
            reader.read_response()

        assert exc_info.value.details["received"] == ["250-partial"]

    def test_malformed_smtp_line(self):
        """Test an SMTP line without a code aborts the read"""
        server = ScriptedServer("250-ok", "garbage")
        reader = ResponseReader(server.factory(server.host, 25), Dialect.SMTP, "utf-8")

        with pytest.raises(ProtocolViolationError):
            reader.read_response()

    def test_observer_sees_received_lines(self, observer):
        """Test every received line is reported with direction '<'"""
        server = ScriptedServer("+OK hi")
        reader = ResponseReader(
            server.factory(server.host, 110), Dialect.POP3, "utf-8", observer
        )

        reader.read_response()

        assert observer.events == [("<", "+OK hi")]


class TestDotStuffing:
    """Tests for dot-stuffing in both directions"""

    def test_stuff_and_unstuff(self):
        """Test a leading dot is doubled on the way out and removed on the way in"""
        assert stuff_line("..hello") == "...hello"
        assert unstuff_line("...hello") == "..hello"
        assert stuff_line("plain") == "plain"
        assert unstuff_line("plain") == "plain"

    def test_single_dot_line_survives(self):
        """Test a body line consisting of one dot cannot end the data"""
        assert stuff_line(".") == ".."
        assert unstuff_line("..") == "."


class TestPayload:
    """Tests for dot-terminated multi-line data"""

    def test_payload_lines_unstuffed(self):
        """Test payload iteration stops at '.' and removes stuffing"""
        server = ScriptedServer("+OK 3 octets", "Subject: hi", "", "..hidden", ".")
        channel = make_channel(server)

        channel.send("RETR", "1")
        payload = channel.open_payload()

        assert list(payload) == ["Subject: hi", "", ".hidden"]
        assert payload.done
        assert payload.lines_read == 3

    def test_payload_lines_not_observed(self, observer):
        """Test message content stays out of the protocol trace"""
        server = ScriptedServer("+OK 2 octets", "Subject: secret", "", "confidential text", ".")
        channel = make_channel(server, observer=observer)

        channel.send("RETR", "1")
        lines = list(channel.open_payload())

        assert lines == ["Subject: secret", "", "confidential text"]
        assert observer.received == ["+OK 2 octets"]

    def test_payload_end_of_stream(self):
        """Test the stream ending before '.' is a protocol violation"""
        server = ScriptedServer("+OK", "line one", None)
        channel = make_channel(server)

        channel.send("RETR", "1")
        payload = channel.open_payload()

        assert next(payload) == "line one"
        with pytest.raises(ProtocolViolationError):
            next(payload)

    def test_unconsumed_payload_blocks_next_command(self):
        """Test a command cannot be sent while a payload is pending"""
        server = ScriptedServer("+OK", "data", ".", "+OK")
        channel = make_channel(server)

        channel.send("RETR", "1")
        payload = channel.open_payload()

        with pytest.raises(SessionStateError):
            channel.send("NOOP")

        assert payload.drain() == 1
        assert channel.send("NOOP").ok


class TestCommandChannel:
    """Tests for the command/response cycle"""

    def test_send_writes_line_and_counts(self):
        """Test tokens are joined with spaces and CRLF-terminated"""
        server = ScriptedServer("+OK", "+OK")
        channel = make_channel(server)

        channel.send("DELE", "1")
        channel.send("NOOP")

        assert server.written == [b"DELE 1\r\n", b"NOOP\r\n"]
        assert channel.sequence == 2

    def test_password_redacted_in_echo(self, observer):
        """Test PASS shows as '(password)' but the real bytes are sent"""
        server = ScriptedServer("+OK")
        channel = make_channel(server, observer=observer)

        channel.send("PASS", "s3cret")

        assert observer.sent == ["PASS (password)"]
        assert server.written == [b"PASS s3cret\r\n"]

    def test_write_line_not_echoed(self, observer):
        """Test message data lines bypass the observer"""
        server = ScriptedServer()
        channel = make_channel(server, observer=observer)

        channel.write_line("Subject: private")

        assert observer.events == []
        assert server.written == [b"Subject: private\r\n"]

    def test_passthrough(self):
        """Test passthrough refuses send() and allows send_raw()"""
        server = ScriptedServer()
        channel = make_channel(server)

        with pytest.raises(SessionStateError):
            channel.send_raw(Command.build("NOOP"))

        channel.begin_passthrough()

        with pytest.raises(SessionStateError):
            channel.send("NOOP")

        channel.send_raw(Command.from_line("TOP 1 0"))
        assert server.written == [b"TOP 1 0\r\n"]


class TestCommand:
    """Tests for command construction"""

    def test_empty_command(self):
        """Test a command needs a verb"""
        with pytest.raises(ValueError):
            Command.build()

    def test_from_line_flags_pass(self):
        """Test a typed PASS line is redacted like a built one"""
        command = Command.from_line("pass hunter2")

        assert command.redact_argument
        assert command.verb == "PASS"
        assert command.echo() == "pass (password)"
        assert command.line == "pass hunter2"

    def test_from_line_pass_phrase_redacted_whole(self):
        """Test a typed pass phrase with spaces is hidden in full"""
        command = Command.from_line("PASS my pass phrase")

        assert command.tokens == ("PASS", "my pass phrase")
        assert command.echo() == "PASS (password)"
        assert command.line == "PASS my pass phrase"

    def test_from_line_keeps_other_arguments(self):
        """Test other typed commands are split into their arguments"""
        command = Command.from_line("TOP 1 10")

        assert command.tokens == ("TOP", "1", "10")
        assert not command.redact_argument
