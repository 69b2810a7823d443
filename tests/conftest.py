"""
Shared test fixtures and configuration for pytest
"""
import json

import pytest

from mailwire.core.email.pop3.session import POP3Session
from mailwire.core.email.smtp.session import SMTPSession
from mailwire.utils.console import reset_console

from test_helpers import FakePrompter, RecordingObserver, ScriptedServer


@pytest.fixture(autouse=True)
def fresh_console():
    """Make every test start with new shared consoles"""
    reset_console()
    yield
    reset_console()


@pytest.fixture
def observer():
    """Observer collecting the protocol trace"""
    return RecordingObserver()


@pytest.fixture
def prompter():
    """Prompter without any canned answers"""
    return FakePrompter()


@pytest.fixture
def pop3_server():
    """Scripted POP3 server with a greeting carrying an APOP challenge"""
    return ScriptedServer("+OK POP3 server ready <1896.697170952@dbc.mtview.ca.us>")


@pytest.fixture
def smtp_server():
    """Scripted SMTP server with a standard greeting"""
    return ScriptedServer("220 smtp.example.com ESMTP ready", host="smtp.example.com")


@pytest.fixture
def make_pop3(observer):
    """Factory for POP3 sessions talking to a scripted server"""

    def factory(server, **kwargs):
        kwargs.setdefault("observer", observer)
        return POP3Session(server.host, transport_factory=server.factory, **kwargs)

    return factory


@pytest.fixture
def make_smtp(observer):
    """Factory for SMTP sessions talking to a scripted server"""

    def factory(server, **kwargs):
        kwargs.setdefault("observer", observer)
        return SMTPSession(server.host, transport_factory=server.factory, **kwargs)

    return factory


@pytest.fixture
def config_file(tmp_path):
    """Configuration file that keeps logs out of the home directory"""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"logging": {"log_dir": None}}), encoding="utf-8")
    return path
