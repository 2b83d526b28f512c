"""Routing of the server's stderr to a log file and the output channel."""

import logging
import os
import threading
import time
from typing import IO, Callable, Optional, Union

from lspsupervisor.config import RevealOutputChannelOn, SupervisorConfiguration
from lspsupervisor.host import OutputChannel
from lspsupervisor.servers.process import ProcessHandle


LOG_FILE_PREFIX = "rls"


def _now_millis() -> int:
    return int(time.time() * 1000)


class LogSink:
    """Per-session log file, opened on the first write.

    The file is created exclusively, so a second session started in the same
    millisecond gets the next free timestamp instead of sharing the file.
    After a write error the sink stays closed and drops further chunks.
    """

    def __init__(self, directory: str, prefix: str = LOG_FILE_PREFIX, clock: Callable[[], int] = _now_millis):
        self.directory = directory
        self.prefix = prefix
        self.clock = clock
        self.path: Optional[str] = None
        self.closed = False
        self._file: Optional[IO[str]] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger("lspsupervisor.output")

    def _open(self) -> IO[str]:
        timestamp = self.clock()
        while True:
            path = os.path.join(self.directory, f"{self.prefix}{timestamp}.log")
            try:
                log_file = open(path, "x", encoding="utf-8")
            except FileExistsError:
                timestamp += 1
                continue
            self.path = path
            self.logger.info(f"Logging server stderr to {path}")
            return log_file

    def write(self, chunk: Union[bytes, str]) -> None:
        text = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else chunk
        with self._lock:
            if self.closed:
                return
            try:
                if self._file is None:
                    self._file = self._open()
                self._file.write(text)
                self._file.flush()
            except OSError as e:
                target = self.path or os.path.join(self.directory, f"{self.prefix}*.log")
                self.logger.error(f"Couldn't write to {target} ({e})")
                self._close()

    def close(self) -> None:
        with self._lock:
            self._close()

    def _close(self) -> None:
        self.closed = True
        log_file, self._file = self._file, None
        if log_file is None:
            return
        try:
            log_file.close()
        except OSError as e:
            self.logger.error(f"Couldn't close {self.path} ({e})")


class OutputRouter:
    """Attaches the configured stderr listeners to a server process."""

    def __init__(
        self,
        configuration: SupervisorConfiguration,
        output_channel: Optional[OutputChannel],
        workspace_path: str,
    ):
        self.configuration = configuration
        self.output_channel = output_channel
        self.workspace_path = workspace_path
        self.log_sink: Optional[LogSink] = None

    def attach(self, handle: ProcessHandle) -> None:
        """Subscribe the enabled listeners to the process's stderr.

        Each attached process gets its own log file.
        """
        if self.configuration.log_to_file:
            self.close()
            self.log_sink = LogSink(self.workspace_path)
            handle.on_stderr_data(self.log_sink.write)

        if self.configuration.show_stderr_in_output_channel and self.output_channel is not None:
            handle.on_stderr_data(self._append_to_output_channel)

    def _append_to_output_channel(self, chunk: Union[bytes, str]) -> None:
        text = chunk if isinstance(chunk, str) else chunk.decode("utf-8", errors="replace")
        self.output_channel.append(text)
        # Server stderr counts as informational output when deciding whether to reveal
        if self.configuration.reveal_output_channel_on <= RevealOutputChannelOn.INFO:
            self.output_channel.show(preserve_focus=True)

    def close(self) -> None:
        if self.log_sink is not None:
            self.log_sink.close()
