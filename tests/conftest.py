"""Shared fixtures for the supervisor tests."""

import os
import sys
import threading
import time
from typing import Any, Dict, List

import pytest

from lspsupervisor.host import Disposable, EditorHost, OutputChannel, TextEditorCommand

FAKE_SERVER = os.path.join(os.path.dirname(__file__), "fake_server.py")


class FakeOutputChannel(OutputChannel):
    def __init__(self, name: str):
        super().__init__(name)
        self.text: List[str] = []
        self.show_calls: List[bool] = []

    def append(self, text: str) -> None:
        self.text.append(text)

    def show(self, preserve_focus: bool = False) -> None:
        self.show_calls.append(preserve_focus)


class FakeHost(EditorHost):
    """In-memory editor host recording everything shown to the user."""

    def __init__(self, workspace_path: str, settings: Dict[str, Any] = None):
        super().__init__(workspace_path)
        self.settings = dict(settings or {})
        self.status_messages: List[str] = []
        self.warnings: List[str] = []
        self.output_channels: List[FakeOutputChannel] = []
        self.commands: Dict[str, TextEditorCommand] = {}
        self.updates: List[tuple] = []
        self._lock = threading.Lock()
        self.warned = threading.Event()

    def set_status_bar_message(self, message: str) -> None:
        with self._lock:
            self.status_messages.append(message)

    def show_warning_message(self, message: str) -> None:
        with self._lock:
            self.warnings.append(message)
        self.warned.set()

    def create_output_channel(self, name: str) -> OutputChannel:
        channel = FakeOutputChannel(name)
        self.output_channels.append(channel)
        return channel

    def register_text_editor_command(self, command_id: str, callback: TextEditorCommand) -> Disposable:
        self.commands[command_id] = callback
        return Disposable(lambda: self.commands.pop(command_id, None))

    def get_configuration(self) -> Dict[str, Any]:
        return dict(self.settings)

    def update_configuration(self, key: str, value: Any) -> None:
        self.settings[key] = value
        self.updates.append((key, value))


@pytest.fixture
def host(tmp_path):
    return FakeHost(str(tmp_path))


@pytest.fixture
def fake_server_command():
    return [sys.executable, FAKE_SERVER]


def wait_until(predicate, timeout: float = 10.0) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
