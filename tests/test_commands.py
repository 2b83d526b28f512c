"""Tests for forwarding editor commands to the server."""

from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from lspsupervisor.commands import DEGLOB_COMMAND, DEGLOB_REQUEST, CommandBridge
from lspsupervisor.errors import RequestFailed, RequestTimeout
from lspsupervisor.host import Range, TextEditor
from lspsupervisor.servers.session import ServerSession


@pytest.fixture
def session():
    return MagicMock(spec=ServerSession)


@pytest.fixture
def editor():
    return TextEditor(uri="file:///work/src/main.rs", selection=Range.from_coordinates(2, 4, 2, 18))


class TestCommandBridge:
    def test_registers_deglob(self, host, session):
        disposable = CommandBridge(session, host).register()

        assert DEGLOB_COMMAND in host.commands
        disposable.dispose()
        assert DEGLOB_COMMAND not in host.commands

    def test_sends_document_and_selection(self, host, session, editor):
        response = Future()
        session.send_request.return_value = response
        CommandBridge(session, host).register()

        host.commands[DEGLOB_COMMAND](editor)

        session.send_request.assert_called_once_with(DEGLOB_REQUEST, {
            "uri": "file:///work/src/main.rs",
            "range": {
                "start": {"line": 2, "character": 4},
                "end": {"line": 2, "character": 18},
            },
        })

    def test_returns_before_response(self, host, session, editor):
        response = Future()
        session.send_request.return_value = response

        returned = CommandBridge(session, host).deglob(editor)

        assert not returned.done()
        response.set_result([])
        assert host.warnings == []

    def test_timeout_shows_one_warning(self, host, session, editor):
        response = Future()
        session.send_request.return_value = response
        CommandBridge(session, host).deglob(editor)

        response.set_exception(RequestTimeout("timeout"))

        assert len(host.warnings) == 1
        assert "timeout" in host.warnings[0]
        assert host.warnings[0].startswith("deglob command failed: ")

    def test_rejection_shows_reason(self, host, session, editor):
        failed = Future()
        failed.set_exception(RequestFailed("no glob import selected"))
        session.send_request.return_value = failed

        CommandBridge(session, host).deglob(editor)

        assert host.warnings == ["deglob command failed: no glob import selected"]

    def test_send_error_does_not_escape(self, host, session, editor):
        session.send_request.side_effect = BrokenPipeError("closed")

        CommandBridge(session, host).deglob(editor)

        assert host.warnings == ["deglob command failed: closed"]
