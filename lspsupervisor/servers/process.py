"""Handle around a spawned server process."""

import logging
import subprocess
import threading
from typing import Callable, List, Optional, Sequence, Union

logger = logging.getLogger("lspsupervisor.servers.process")

StderrListener = Callable[[Union[bytes, str]], None]
ErrorListener = Callable[[BaseException], None]

# Size of a single stderr read
CHUNK_SIZE = 4096


def spawn(command: Sequence[str], cwd: Optional[str] = None) -> "ProcessHandle":
    """Spawn a server process with piped standard streams.

    Args:
        command: The program and its arguments.
        cwd: Working directory for the process.

    Returns:
        A handle to the running process.

    Raises:
        OSError: If the process could not be spawned.
    """
    logger.info(f"Spawning server process: {' '.join(command)}" + (f" in {cwd}" if cwd else ""))
    process = subprocess.Popen(
        list(command),
        cwd=cwd,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        bufsize=0,
    )
    return ProcessHandle(process)


class ProcessHandle:
    """A running server process with stderr and error listeners.

    Listeners must be attached before :meth:`start_stderr_pump` is called;
    chunks read before that point have nobody to go to.
    """

    def __init__(self, process: subprocess.Popen):
        self.process = process
        self._stderr_listeners: List[StderrListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._pump_thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger("lspsupervisor.servers.process")

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdin(self):
        return self.process.stdin

    @property
    def stdout(self):
        return self.process.stdout

    def poll(self) -> Optional[int]:
        return self.process.poll()

    def is_running(self) -> bool:
        return self.process.poll() is None

    def on_stderr_data(self, listener: StderrListener) -> None:
        self._stderr_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def emit_stderr(self, chunk: Union[bytes, str]) -> None:
        """Deliver a stderr chunk to every listener, in attachment order.

        A failing listener is logged and skipped; the others still get the
        chunk and later chunks keep flowing.
        """
        for listener in self._stderr_listeners:
            try:
                listener(chunk)
            except Exception:
                self.logger.exception("Error in server stderr listener")

    def emit_error(self, error: BaseException) -> None:
        """Deliver a process error to the error listeners.

        Exceptions raised by a listener propagate to the caller.

        Raises:
            BaseException: The error itself, if no listener is registered.
        """
        if not self._error_listeners:
            raise error
        for listener in self._error_listeners:
            listener(error)

    def start_stderr_pump(self) -> None:
        """Start forwarding the process's stderr to the listeners."""
        if self._pump_thread is not None or self.process.stderr is None:
            return

        self._pump_thread = threading.Thread(
            target=self._pump_stderr,
            daemon=True,
            name=f"server-{self.pid}-stderr",
        )
        self._pump_thread.start()

    def _pump_stderr(self) -> None:
        stream = self.process.stderr
        read = getattr(stream, "read1", stream.read)
        while True:
            try:
                chunk = read(CHUNK_SIZE)
            except (OSError, ValueError) as e:
                self.logger.debug(f"Stopped reading server stderr: {e}")
                return
            if not chunk:
                return
            self.emit_stderr(chunk)

    def terminate(self, timeout: float = 5) -> None:
        """Terminate the process, killing it if it does not exit in time."""
        if self.process.poll() is None:
            try:
                self.process.terminate()
                self.process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self.logger.warning("Server process did not terminate, forcing kill")
                self.process.kill()
                self.process.wait()

        for stream in (self.process.stdin, self.process.stdout, self.process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass
