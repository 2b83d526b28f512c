"""Editor commands forwarded to the server as requests."""

import logging
from concurrent.futures import Future

from lspsupervisor.host import Disposable, EditorHost, TextEditor
from lspsupervisor.servers.session import ServerSession


DEGLOB_COMMAND = "rls.deglob"
DEGLOB_REQUEST = "rustWorkspace/deglob"


class CommandBridge:
    """Registers editor commands that send a single request to the server.

    Handlers return as soon as the request is queued; failures are reported
    to the user as a warning and never raised.
    """

    def __init__(self, session: ServerSession, host: EditorHost):
        self.session = session
        self.host = host
        self.logger = logging.getLogger("lspsupervisor.commands")

    def register(self) -> Disposable:
        """Register the commands with the host.

        Returns:
            A disposable unregistering them.
        """
        return self.host.register_text_editor_command(DEGLOB_COMMAND, self.deglob)

    def deglob(self, editor: TextEditor) -> Future:
        """Replace the glob import under the selection with explicit imports."""
        params = {
            "uri": editor.uri,
            "range": editor.selection.model_dump(),
        }
        self.logger.info(f"Sending {DEGLOB_REQUEST} for {editor.uri}")

        try:
            future = self.session.send_request(DEGLOB_REQUEST, params)
        except Exception as e:
            future = Future()
            future.set_exception(e)

        future.add_done_callback(self._on_deglob_done)
        return future

    def _on_deglob_done(self, future: Future) -> None:
        error = future.exception()
        if error is None:
            self.logger.debug(f"{DEGLOB_REQUEST} succeeded")
            return

        self.logger.error(f"{DEGLOB_REQUEST} failed: {error}")
        self.host.show_warning_message(f"deglob command failed: {error}")
