"""Aggregation of the server's diagnostics activity into a busy indicator."""

import enum
import logging
import threading
from typing import Any

from lspsupervisor.servers.session import ServerSession, SessionState
from lspsupervisor.utils.spinner import Spinner


DIAGNOSTICS_BEGIN = "rustDocument/diagnosticsBegin"
DIAGNOSTICS_END = "rustDocument/diagnosticsEnd"

WORKING_MESSAGE = "RLS analysis: working"
DONE_MESSAGE = "RLS analysis: done"


class ActivityState(enum.Enum):
    IDLE = "idle"
    BUSY = "busy"


class DiagnosticsActivityAggregator:
    """Collapses overlapping diagnostics runs into one busy flag.

    The server does not guarantee that begin/end pairs from concurrent runs
    nest, so the count never drops below zero: extra end notifications are
    ignored and a single begin makes the status busy again.
    """

    def __init__(self, spinner: Spinner):
        self.spinner = spinner
        self._count = 0
        self._lock = threading.Lock()
        self.logger = logging.getLogger("lspsupervisor.diagnostics")

    @property
    def count(self) -> int:
        return self._count

    @property
    def state(self) -> ActivityState:
        return ActivityState.BUSY if self._count > 0 else ActivityState.IDLE

    @property
    def busy(self) -> bool:
        return self._count > 0

    def attach(self, session: ServerSession) -> None:
        """Subscribe to the diagnostics notifications once the session is ready."""
        session.on_ready(lambda: self._subscribe(session))
        session.on_state_change(self._on_session_state)

    def _subscribe(self, session: ServerSession) -> None:
        session.on_notification(DIAGNOSTICS_BEGIN, self.on_begin)
        session.on_notification(DIAGNOSTICS_END, self.on_end)
        self.logger.debug("Listening for diagnostics activity")

    def on_begin(self, params: Any = None) -> None:
        with self._lock:
            self._count += 1
            if self._count == 1:
                self.spinner.start(WORKING_MESSAGE)

    def on_end(self, params: Any = None) -> None:
        with self._lock:
            if self._count == 0:
                self.logger.debug("Unmatched diagnostics end notification")
            self._count = max(self._count - 1, 0)
            if self._count == 0:
                self.spinner.stop(DONE_MESSAGE)

    def reset(self) -> None:
        """Drop outstanding activity, e.g. when the server went away mid-run."""
        with self._lock:
            was_busy = self._count > 0
            self._count = 0
            if was_busy:
                self.spinner.stop(DONE_MESSAGE)

    def _on_session_state(self, state: SessionState) -> None:
        if state in (SessionState.FAILED, SessionState.STOPPED):
            self.reset()
