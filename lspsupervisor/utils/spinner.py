"""Animated status bar spinner."""

import threading
from typing import Callable, Optional, Sequence

FRAMES = ("◐", "◓", "◑", "◒")


class Spinner:
    """Shows a message with a rotating frame until stopped.

    ``set_status`` is the host's status bar setter. The animation runs on a
    daemon thread; starting an already running spinner only changes its
    message.
    """

    def __init__(self, set_status: Callable[[str], None], interval: float = 0.1, frames: Sequence[str] = FRAMES):
        self.set_status = set_status
        self.interval = interval
        self.frames = tuple(frames)
        self.message = ""
        self._lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def spinning(self) -> bool:
        return self._thread is not None

    def start(self, message: str) -> None:
        with self._lock:
            self.message = message
            self.set_status(f"{self.frames[0]} {message}")
            if self._thread is not None:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._animate,
                args=(self._stop_event,),
                daemon=True,
                name="status-spinner",
            )
            self._thread.start()

    def _animate(self, stop_event: threading.Event) -> None:
        index = 0
        while not stop_event.wait(self.interval):
            index = (index + 1) % len(self.frames)
            with self._lock:
                if stop_event.is_set():
                    return
                self.set_status(f"{self.frames[index]} {self.message}")

    def stop(self, message: str) -> None:
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
            self._thread = None
            self.message = message
            self.set_status(message)
