"""Editor host interface and a terminal-backed implementation.

The supervisor never talks to an editor directly. Everything it needs from the
editor (status bar, warnings, output channels, commands, configuration and
teardown registration) goes through an :class:`EditorHost`.
"""

import abc
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import click
from pydantic import BaseModel
from pygls.uris import from_fs_path



class Disposable:
    """A teardown handle, called once when the host deactivates."""

    def __init__(self, callback: Callable[[], None]):
        self._callback: Optional[Callable[[], None]] = callback

    def dispose(self) -> None:
        """Run the teardown callback. Later calls are no-ops."""
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()


class Position(BaseModel):
    """Zero-based position in a text document."""

    line: int
    character: int


class Range(BaseModel):
    """Text range between two positions, end exclusive."""

    start: Position
    end: Position

    @classmethod
    def from_coordinates(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> "Range":
        return cls(
            start=Position(line=start_line, character=start_char),
            end=Position(line=end_line, character=end_char),
        )


@dataclass(frozen=True)
class TextEditor:
    """The document and selection a text-editor command is invoked on."""

    uri: str
    selection: Range

    @classmethod
    def for_path(cls, path: str, selection: Range) -> "TextEditor":
        """Build an editor context for a filesystem path.

        Args:
            path: Path to the document.
            selection: The selected range.

        Returns:
            The editor context with a ``file://`` URI.
        """
        return cls(uri=from_fs_path(os.path.abspath(path)), selection=selection)


TextEditorCommand = Callable[[TextEditor], Any]


class OutputChannel(abc.ABC):
    """Editor-visible text surface."""

    def __init__(self, name: str):
        self.name = name

    @abc.abstractmethod
    def append(self, text: str) -> None:
        """Append text to the channel."""
        pass

    @abc.abstractmethod
    def show(self, preserve_focus: bool = False) -> None:
        """Bring the channel into view.

        Args:
            preserve_focus: Keep input focus where it is.
        """
        pass


class EditorHost(abc.ABC):
    """Abstract editor surface used by the supervisor."""

    def __init__(self, workspace_path: str):
        self.workspace_path = os.path.abspath(workspace_path)
        self.subscriptions: List[Disposable] = []

    @abc.abstractmethod
    def set_status_bar_message(self, message: str) -> None:
        """Replace the status bar text."""
        pass

    @abc.abstractmethod
    def show_warning_message(self, message: str) -> None:
        """Show a non-blocking warning."""
        pass

    @abc.abstractmethod
    def create_output_channel(self, name: str) -> OutputChannel:
        """Create a named output channel."""
        pass

    @abc.abstractmethod
    def register_text_editor_command(self, command_id: str, callback: TextEditorCommand) -> Disposable:
        """Register a command invoked on the active editor.

        Args:
            command_id: The command identifier.
            callback: Handler receiving the active editor.

        Returns:
            A disposable unregistering the command.
        """
        pass

    @abc.abstractmethod
    def get_configuration(self) -> Dict[str, Any]:
        """Get the workspace settings."""
        pass

    @abc.abstractmethod
    def update_configuration(self, key: str, value: Any) -> None:
        """Store a workspace setting."""
        pass

    def dispose_subscriptions(self) -> None:
        """Dispose every registered subscription, newest first."""
        while self.subscriptions:
            self.subscriptions.pop().dispose()


class TerminalOutputChannel(OutputChannel):
    """Output channel printing to the terminal's stderr."""

    def __init__(self, name: str):
        super().__init__(name)
        self._lock = threading.Lock()
        self._visible = False

    def append(self, text: str) -> None:
        with self._lock:
            click.echo(text, nl=False, err=True)

    def show(self, preserve_focus: bool = False) -> None:
        with self._lock:
            if not self._visible:
                click.secho(f"--- {self.name} ---", err=True, bold=True)
                self._visible = True


class TerminalHost(EditorHost):
    """Editor host for running the supervisor from a terminal.

    Settings are kept in ``.vscode/settings.json`` under the workspace, the
    same place an editor would store workspace settings.
    """

    def __init__(self, workspace_path: str):
        super().__init__(workspace_path)
        if not os.path.isdir(self.workspace_path):
            raise ValueError(f"Workspace path is not a directory: {self.workspace_path}")

        self.logger = logging.getLogger("lspsupervisor.host")
        self.settings_path = os.path.join(self.workspace_path, ".vscode", "settings.json")
        self.commands: Dict[str, TextEditorCommand] = {}
        self._settings = self._read_settings()

    def _read_settings(self) -> Dict[str, Any]:
        if not os.path.isfile(self.settings_path):
            return {}

        try:
            with open(self.settings_path, encoding="utf-8") as f:
                settings = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Could not read settings from {self.settings_path}: {e}")
            return {}

        if not isinstance(settings, dict):
            self.logger.error(f"Ignoring settings in {self.settings_path}: expected a JSON object")
            return {}
        return settings

    def set_status_bar_message(self, message: str) -> None:
        click.secho(f"[status] {message}", err=True, fg="cyan")

    def show_warning_message(self, message: str) -> None:
        click.secho(f"[warning] {message}", err=True, fg="yellow")

    def create_output_channel(self, name: str) -> OutputChannel:
        return TerminalOutputChannel(name)

    def register_text_editor_command(self, command_id: str, callback: TextEditorCommand) -> Disposable:
        self.commands[command_id] = callback
        return Disposable(lambda: self.commands.pop(command_id, None))

    def execute_command(self, command_id: str, editor: TextEditor) -> Any:
        """Invoke a registered text-editor command and return its result.

        Raises:
            KeyError: If no such command is registered.
        """
        return self.commands[command_id](editor)

    def get_configuration(self) -> Dict[str, Any]:
        return dict(self._settings)

    def update_configuration(self, key: str, value: Any) -> None:
        self._settings[key] = value
        os.makedirs(os.path.dirname(self.settings_path), exist_ok=True)
        with open(self.settings_path, "w", encoding="utf-8") as f:
            json.dump(self._settings, f, indent=4)
            f.write("\n")
        self.logger.info(f"Updated setting {key!r} in {self.settings_path}")
