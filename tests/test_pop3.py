"""
Tests for the POP3 session and the mailbox retrieval driver
"""
import pytest

from mailwire.core.email.auth import AuthMode
from mailwire.core.email.pop3.retrieval import (
    MaildropSink,
    MailboxRetrieval,
    MemorySink,
    RetrievalOptions,
)
from mailwire.core.email.pop3.session import MailboxItem, MailboxSummary
from mailwire.core.email.upgrade import UpgradePolicy, UpgradeState
from mailwire.utils.errors import (
    AuthRejectedError,
    CommandRejectedError,
    ConnectionFailedError,
    MessageExistsError,
    ProtocolViolationError,
)

from test_helpers import ScriptedServer

MESSAGE_ONE = ["From: a@example.com", "Subject: one", "", "Hello", "..dotted", "."]
MESSAGE_TWO = ["From: b@example.com", "Subject: two", "", "Bye", "."]


class TestMailboxSummary:
    """Tests for LIST parsing"""

    def test_parse(self):
        """Test scan lines become items with totals"""
        summary = MailboxSummary.parse(["1 120", "2 200"])

        assert summary.items == [MailboxItem(1, 120), MailboxItem(2, 200)]
        assert summary.count == 2
        assert summary.total_bytes == 320

    def test_malformed_line(self):
        """Test a non-numeric scan line is a protocol violation"""
        with pytest.raises(ProtocolViolationError):
            MailboxSummary.parse(["1 lots"])


class TestPOP3Session:
    """Tests for individual POP3 commands"""

    def test_greeting_rejected(self, make_pop3):
        """Test a negative greeting closes the session"""
        server = ScriptedServer("-ERR too busy")
        session = make_pop3(server)

        with pytest.raises(CommandRejectedError) as exc_info:
            session.connect()

        assert exc_info.value.stage == "greeting"
        assert not session.connected
        assert server.transports[0].closed

    def test_default_ports(self, make_pop3, pop3_server):
        """Test 110 for plaintext and 995 for implicit TLS"""
        assert make_pop3(pop3_server).port == 110
        assert make_pop3(pop3_server, implicit_tls=True).port == 995
        assert make_pop3(pop3_server, port=1110).port == 1110

    def test_challenge(self, make_pop3, pop3_server):
        """Test the APOP challenge is read from the greeting"""
        session = make_pop3(pop3_server)
        assert session.challenge is None

        session.connect()

        assert session.challenge == "<1896.697170952@dbc.mtview.ca.us>"

    def test_capabilities(self, make_pop3, pop3_server):
        """Test CAPA lines become a set"""
        pop3_server.feed("+OK Capability list follows", "TOP", "UIDL", "STLS", ".")
        session = make_pop3(pop3_server)
        session.connect()

        assert session.capabilities() == frozenset({"TOP", "UIDL", "STLS"})

    def test_capabilities_unsupported(self, make_pop3, pop3_server):
        """Test a server without CAPA yields an empty set"""
        pop3_server.feed("-ERR unknown command")
        session = make_pop3(pop3_server)
        session.connect()

        assert session.capabilities() == frozenset()

    def test_stat(self, make_pop3, pop3_server):
        """Test STAT returns count and size"""
        pop3_server.feed("+OK 2 320")
        session = make_pop3(pop3_server)
        session.connect()

        assert session.stat() == (2, 320)

    def test_list_summary(self, make_pop3, pop3_server):
        """Test LIST after login reports each message and the total"""
        pop3_server.feed("+OK maildrop has 2 messages", "+OK 2 messages", "1 120", "2 200", ".")
        session = make_pop3(pop3_server)
        session.connect()
        session.login("mrose", "tanstaaf", use_apop=True)

        summary = session.list()

        assert summary.count == 2
        assert summary.total_bytes == 320
        assert pop3_server.commands == [
            "APOP mrose c4c9334bac560ecc979e58001b3e22fb",
            "LIST",
        ]

    def test_top(self, make_pop3, pop3_server):
        """Test TOP returns header lines as a payload"""
        pop3_server.feed("+OK", "Subject: one", "", ".")
        session = make_pop3(pop3_server)
        session.connect()

        assert list(session.top(1)) == ["Subject: one", ""]
        assert pop3_server.commands == ["TOP 1 0"]

    def test_delete_rejected(self, make_pop3, pop3_server):
        """Test a failed DELE names its stage"""
        pop3_server.feed("-ERR no such message")
        session = make_pop3(pop3_server)
        session.connect()

        with pytest.raises(CommandRejectedError) as exc_info:
            session.delete(9)

        assert exc_info.value.stage == "DELE"
        assert exc_info.value.command == "DELE 9"

    def test_quit_closes(self, make_pop3, pop3_server):
        """Test QUIT closes the transport and keeps the command count"""
        pop3_server.feed("+OK bye")
        session = make_pop3(pop3_server)
        session.connect()

        session.quit()

        assert not session.connected
        assert session.sequence == 1
        assert pop3_server.transports[0].closed


class TestMailboxRetrieval:
    """Tests for the download driver"""

    def test_retrieve_and_delete(self, make_pop3, pop3_server):
        """Test every message is stored, then deleted, then QUIT"""
        pop3_server.feed(
            "+OK", "+OK logged in",
            "+OK 2 messages", "1 120", "2 200", ".",
            "+OK 120 octets", *MESSAGE_ONE,
            "+OK deleted",
            "+OK 200 octets", *MESSAGE_TWO,
            "+OK deleted",
            "+OK bye",
        )
        sink = MemorySink()
        options = RetrievalOptions(username="alice", password="secret")

        result = MailboxRetrieval(make_pop3(pop3_server), sink, options).run()

        assert pop3_server.commands == [
            "USER alice", "PASS secret", "LIST",
            "RETR 1", "DELE 1", "RETR 2", "DELE 2", "QUIT",
        ]
        assert sink.messages[1] == ["From: a@example.com", "Subject: one", "", "Hello", ".dotted"]
        assert sink.messages[2][-1] == "Bye"
        assert result.deleted == [1, 2]
        assert [m.lines for m in result.retrieved] == [5, 4]
        assert result.auth_mode is AuthMode.CLEARTEXT
        assert result.commands_sent == 8

    def test_message_content_not_traced(self, make_pop3, pop3_server, observer):
        """Test downloaded message lines never reach the observer"""
        pop3_server.feed(
            "+OK", "+OK logged in",
            "+OK 1 message", "1 60", ".",
            "+OK 60 octets", "Subject: secret body", "", "confidential text", ".",
            "+OK deleted",
            "+OK bye",
        )
        sink = MemorySink()
        options = RetrievalOptions(username="alice", password="secret")

        MailboxRetrieval(make_pop3(pop3_server), sink, options).run()

        assert sink.messages[1] == ["Subject: secret body", "", "confidential text"]
        assert "confidential text" not in observer.received
        assert "Subject: secret body" not in observer.received
        assert "+OK 60 octets" in observer.received

    def test_keep_on_server(self, make_pop3, pop3_server):
        """Test no DELE is sent when messages are kept"""
        pop3_server.feed(
            "+OK maildrop ready",
            "+OK 1 message", "1 200", ".",
            "+OK", *MESSAGE_TWO,
            "+OK bye",
        )
        options = RetrievalOptions(
            username="mrose", password="tanstaaf", use_apop=True, keep_on_server=True
        )

        result = MailboxRetrieval(make_pop3(pop3_server), MemorySink(), options).run()

        assert "DELE" not in pop3_server.verbs
        assert pop3_server.verbs == ["APOP", "LIST", "RETR", "QUIT"]
        assert result.deleted == []
        assert result.auth_mode is AuthMode.CHALLENGE

    def test_empty_mailbox(self, make_pop3, pop3_server):
        """Test an empty maildrop goes straight to QUIT"""
        pop3_server.feed("+OK", "+OK", "+OK 0 messages", ".", "+OK bye")
        options = RetrievalOptions(username="alice", password="secret")

        result = MailboxRetrieval(make_pop3(pop3_server), MemorySink(), options).run()

        assert result.empty
        assert pop3_server.verbs == ["USER", "PASS", "LIST", "QUIT"]

    def test_capabilities_and_stls(self, make_pop3, pop3_server):
        """Test CAPA and STLS run before login when asked for"""
        pop3_server.feed(
            "+OK", "STLS", "USER", ".",
            "+OK Begin TLS",
            "+OK", "+OK",
            "+OK 0 messages", ".",
            "+OK bye",
        )
        options = RetrievalOptions(
            username="alice",
            password="secret",
            upgrade_policy=UpgradePolicy.REQUIRED,
            query_capabilities=True,
        )

        result = MailboxRetrieval(make_pop3(pop3_server), MemorySink(), options).run()

        assert pop3_server.verbs == ["CAPA", "STLS", "USER", "PASS", "LIST", "QUIT"]
        assert result.capabilities == frozenset({"STLS", "USER"})
        assert result.upgrade_state is UpgradeState.UPGRADED
        assert not result.security_degraded

    def test_rejected_retr_quits(self, make_pop3, pop3_server):
        """Test a rejected RETR stops the loop and still says QUIT"""
        pop3_server.feed(
            "+OK", "+OK",
            "+OK 1 message", "1 120", ".",
            "-ERR message locked",
            "+OK bye",
        )
        sink = MemorySink()
        options = RetrievalOptions(username="alice", password="secret")
        session = make_pop3(pop3_server)

        with pytest.raises(CommandRejectedError) as exc_info:
            MailboxRetrieval(session, sink, options).run()

        assert exc_info.value.stage == "RETR"
        assert pop3_server.verbs[-1] == "QUIT"
        assert "DELE" not in pop3_server.verbs
        assert sink.messages == {}
        assert not session.connected

    def test_rejected_password_quits(self, make_pop3, pop3_server):
        """Test an authentication failure ends with QUIT"""
        pop3_server.feed("+OK", "-ERR invalid password", "+OK bye")
        options = RetrievalOptions(username="alice", password="wrong")

        with pytest.raises(AuthRejectedError):
            MailboxRetrieval(make_pop3(pop3_server), MemorySink(), options).run()

        assert pop3_server.verbs == ["USER", "PASS", "QUIT"]

    def test_connection_lost_mid_message(self, make_pop3, pop3_server):
        """Test a dropped connection discards the partial message"""
        pop3_server.feed(
            "+OK", "+OK",
            "+OK 1 message", "1 120", ".",
            "+OK", "From: a@example.com", None,
        )
        sink = MemorySink()
        options = RetrievalOptions(username="alice", password="secret")
        session = make_pop3(pop3_server)

        with pytest.raises(ProtocolViolationError):
            MailboxRetrieval(session, sink, options).run()

        assert sink.messages == {}
        assert "QUIT" not in pop3_server.verbs
        assert not session.connected

    def test_unreachable_server(self, make_pop3):
        """Test connection failures propagate unchanged"""

        def refuse(host, port, timeout=None, read_timeout=None):
            raise ConnectionFailedError("Connection refused")

        session = make_pop3(ScriptedServer())
        session._transport_factory = refuse

        with pytest.raises(ConnectionFailedError):
            MailboxRetrieval(session, MemorySink(), RetrievalOptions("a", "b")).run()


class TestMaildropSink:
    """Tests for .eml files on disk"""

    def test_writes_crlf_file(self, tmp_path):
        """Test lines are stored CRLF-terminated under the expected name"""
        sink = MaildropSink(tmp_path / "mail", "alice", "mail.example.com", "cp1252")
        writer = sink.begin(MailboxItem(3, 10))
        writer.write_line("Subject: caf\xe9")
        writer.write_line("")
        location = writer.commit()

        path = tmp_path / "mail" / "alice@mail.example.com[3].eml"
        assert location == str(path)
        assert path.read_bytes() == b"Subject: caf\xe9\r\n\r\n"

    def test_existing_file_not_overwritten(self, tmp_path):
        """Test an existing message file is refused"""
        sink = MaildropSink(tmp_path, "alice", "mail.example.com", "utf-8")
        path = tmp_path / sink.filename(MailboxItem(1, 10))
        path.write_text("old", encoding="utf-8")

        with pytest.raises(MessageExistsError):
            sink.begin(MailboxItem(1, 10))

        assert path.read_text(encoding="utf-8") == "old"

    def test_discard_removes_partial_file(self, tmp_path):
        """Test discarding a writer deletes what was written"""
        sink = MaildropSink(tmp_path, "alice", "mail.example.com", "utf-8")
        writer = sink.begin(MailboxItem(1, 10))
        writer.write_line("partial")

        writer.discard()

        assert list(tmp_path.iterdir()) == []

    def test_existing_file_quits_before_retr(self, tmp_path, make_pop3, pop3_server):
        """Test a file collision stops the session cleanly with QUIT"""
        pop3_server.feed("+OK", "+OK", "+OK 1 message", "1 120", ".", "+OK bye")
        sink = MaildropSink(tmp_path, "alice", pop3_server.host, "cp1252")
        (tmp_path / sink.filename(MailboxItem(1, 120))).write_text("old")
        options = RetrievalOptions(username="alice", password="secret")

        with pytest.raises(MessageExistsError):
            MailboxRetrieval(make_pop3(pop3_server), sink, options).run()

        assert pop3_server.verbs == ["USER", "PASS", "LIST", "QUIT"]

    def test_retrieval_into_files(self, tmp_path, make_pop3, pop3_server):
        """Test a full run leaves one file per message"""
        pop3_server.feed(
            "+OK", "+OK",
            "+OK 1 message", "1 120", ".",
            "+OK", *MESSAGE_ONE,
            "+OK deleted",
            "+OK bye",
        )
        sink = MaildropSink(tmp_path, "alice", pop3_server.host, "cp1252")
        options = RetrievalOptions(username="alice", password="secret")

        result = MailboxRetrieval(make_pop3(pop3_server), sink, options).run()

        path = tmp_path / "alice@mail.example.com[1].eml"
        assert result.retrieved[0].location == str(path)
        assert path.read_bytes() == (
            b"From: a@example.com\r\nSubject: one\r\n\r\nHello\r\n.dotted\r\n"
        )
