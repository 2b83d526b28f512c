"""Session with a running language server over stdio."""

import enum
import logging
import os
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from pygls.uris import from_fs_path

from lspsupervisor.errors import LaunchError, RequestFailed, RequestTimeout
from lspsupervisor.host import Disposable, EditorHost
from lspsupervisor.servers import jsonrpc
from lspsupervisor.servers.launcher import LaunchOutcome
from lspsupervisor.servers.process import ProcessHandle

ServerOptions = Callable[[], "Future[LaunchOutcome]"]
NotificationHandler = Callable[[Any], None]
ReadyCallback = Callable[[], None]
StateListener = Callable[["SessionState"], None]

# window/logMessage and window/showMessage severities
MESSAGE_TYPE_ERROR = 1
MESSAGE_TYPE_WARNING = 2

LOG_LEVELS = {
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
}


class SessionState(enum.Enum):
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


class ServerSession:
    """Owns one server process and the JSON-RPC channel to it.

    The process is obtained through ``server_options``, which is invoked on
    every start and restart. Notifications are dispatched on the reader
    thread, so handlers must not block.
    """

    def __init__(
        self,
        name: str,
        server_options: ServerOptions,
        host: EditorHost,
        request_timeout: float = 30.0,
        initialization_options: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the session.

        Args:
            name: Human readable server name.
            server_options: Callback starting one launch attempt.
            host: The editor host.
            request_timeout: Seconds before an unanswered request is rejected.
            initialization_options: Passed to the server on initialize.
        """
        self.name = name
        self.server_options = server_options
        self.host = host
        self.workspace_path = host.workspace_path
        self.request_timeout = request_timeout
        self.initialization_options = initialization_options or {}
        self.logger = logging.getLogger("lspsupervisor.servers.session")

        self.process: Optional[ProcessHandle] = None
        self._state = SessionState.CREATED
        self._lock = threading.RLock()
        self._stopping = False

        # LSP communication
        self.next_request_id = 1
        self.pending_requests: Dict[str, Future] = {}
        self.write_queue: queue.Queue = queue.Queue()
        self.reader_thread: Optional[threading.Thread] = None
        self.writer_thread: Optional[threading.Thread] = None
        self.starter_thread: Optional[threading.Thread] = None
        self.running = False

        self._ready = False
        self._ready_callbacks: List[ReadyCallback] = []
        self._notification_handlers: Dict[str, List[NotificationHandler]] = {}
        self._state_listeners: List[StateListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            if state is self._state:
                return
            self.logger.info(f"{self.name} session: {self._state.value} -> {state.value}")
            self._state = state
            listeners = list(self._state_listeners)
        for listener in listeners:
            listener(state)

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def on_ready(self, callback: ReadyCallback) -> None:
        """Run ``callback`` once the server has been initialized.

        Called immediately if the session is already ready.
        """
        with self._lock:
            if not self._ready:
                self._ready_callbacks.append(callback)
                return
        callback()

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        with self._lock:
            self._notification_handlers.setdefault(method, []).append(handler)

    def start(self) -> Disposable:
        """Start the session in the background.

        Returns:
            A disposable stopping the session.
        """
        with self._lock:
            if self._state in (SessionState.STARTING, SessionState.RUNNING):
                self.logger.info(f"{self.name} session is already {self._state.value}")
                return Disposable(self.stop)
            self._stopping = False
            self._set_state(SessionState.STARTING)

        self.starter_thread = threading.Thread(
            target=self._start_server,
            daemon=True,
            name=f"{self.name}-start",
        )
        self.starter_thread.start()
        return Disposable(self.stop)

    def _start_server(self) -> None:
        try:
            outcome = self.server_options().result()
        except LaunchError as e:
            self.logger.error(f"Failed to start {self.name}: {e}")
            self._set_state(SessionState.FAILED)
            return
        except BaseException:
            self._set_state(SessionState.FAILED)
            raise

        if not outcome.ok:
            self._set_state(SessionState.FAILED)
            return

        with self._lock:
            if self._stopping:
                outcome.process.terminate()
                return
            self.process = outcome.process

        self._start_lsp_communication()
        self._initialize_lsp_server()

    def _start_lsp_communication(self) -> None:
        """Start LSP communication threads."""
        self.running = True

        self.reader_thread = threading.Thread(
            target=self._lsp_reader,
            daemon=True,
            name=f"{self.name}-lsp-reader",
        )
        self.reader_thread.start()

        self.writer_thread = threading.Thread(
            target=self._lsp_writer,
            daemon=True,
            name=f"{self.name}-lsp-writer",
        )
        self.writer_thread.start()

    def _initialize_lsp_server(self) -> None:
        params = {
            "processId": os.getpid(),
            "rootPath": self.workspace_path,
            "rootUri": from_fs_path(self.workspace_path),
            "capabilities": {
                "textDocument": {
                    "synchronization": {"didSave": True},
                    "publishDiagnostics": {},
                },
                "workspace": {
                    "applyEdit": True,
                    "didChangeConfiguration": {},
                },
            },
            "initializationOptions": self.initialization_options,
            "trace": "off",
        }

        # Building the server from source can take a while, so initialize waits
        # until the server answers or exits.
        try:
            self._send_request("initialize", params, timeout=None).result()
        except RequestFailed as e:
            if self._stopping:
                return
            self.logger.error(f"Failed to initialize {self.name}: {e}")
            self.host.set_status_bar_message("RLS could not be started")
            self._abort()
            return

        with self._lock:
            if self._stopping:
                return
            self._ready = True
            callbacks, self._ready_callbacks = self._ready_callbacks, []
            self._set_state(SessionState.RUNNING)

        # Ready callbacks subscribe to notifications, which the server may send
        # as soon as it sees initialized
        for callback in callbacks:
            callback()

        self._send_notification("initialized", {})
        self.logger.info(f"Successfully initialized {self.name}")

    def _abort(self) -> None:
        self.running = False
        if self.process is not None:
            self.process.terminate()
        self._set_state(SessionState.FAILED)

    def _lsp_reader(self) -> None:
        """Read messages from the server until it closes stdout."""
        process = self.process
        try:
            while self.running:
                try:
                    message = jsonrpc.read_message(process.stdout)
                except ValueError as e:
                    # Also raised when stdout is closed under us during stop
                    if self.running:
                        self.logger.error(f"Malformed message from {self.name}: {e}")
                    break
                except OSError as e:
                    if not self.running:
                        break
                    process.emit_error(e)
                    break

                if message is None:
                    break

                self.logger.debug(f"Received LSP message: {message}")
                self._process_lsp_message(message)
        finally:
            self._on_server_exit()

    def _lsp_writer(self) -> None:
        """Write queued messages to the server until a None sentinel."""
        process = self.process
        write_queue = self.write_queue
        while True:
            try:
                message = write_queue.get(timeout=0.5)
            except queue.Empty:
                if not self.running:
                    break
                continue

            if message is None:
                break

            try:
                self.logger.debug(f"Sending LSP message: {message}")
                process.stdin.write(jsonrpc.encode_message(message))
                process.stdin.flush()
            except OSError as e:
                if not self.running or not process.is_running():
                    # The reader reports the exit
                    break
                process.emit_error(e)
                break

    def _on_server_exit(self) -> None:
        with self._lock:
            was_running = self.running
            self.running = False
            pending, self.pending_requests = self.pending_requests, {}
            self._ready = False

        for future in pending.values():
            if not future.done():
                future.set_exception(RequestFailed(f"{self.name} exited"))

        self.write_queue.put(None)

        if self._stopping:
            self._set_state(SessionState.STOPPED)
        elif was_running:
            return_code = self.process.poll() if self.process else None
            self.logger.error(f"{self.name} exited unexpectedly (code {return_code})")
            self._set_state(SessionState.FAILED)

    def _process_lsp_message(self, message: Dict[str, Any]) -> None:
        if "method" not in message:
            self._handle_response(message)
        elif "id" in message:
            self._handle_server_request(message)
        else:
            self._handle_notification(message)

    def _handle_response(self, message: Dict[str, Any]) -> None:
        request_id = str(message.get("id"))
        with self._lock:
            future = self.pending_requests.pop(request_id, None)
        if future is None:
            self.logger.warning(f"Response to unknown request {request_id}")
            return

        error = message.get("error")
        if error is not None:
            reason = error.get("message", error) if isinstance(error, dict) else error
            future.set_exception(RequestFailed(str(reason)))
        else:
            future.set_result(message.get("result"))

    def _handle_server_request(self, message: Dict[str, Any]) -> None:
        method = message["method"]
        result = None
        if method == "workspace/configuration":
            items = (message.get("params") or {}).get("items", [])
            result = [None] * len(items)
        self.logger.debug(f"Answering server request {method}")
        self.write_queue.put(jsonrpc.response(message["id"], result))

    def _handle_notification(self, notification: Dict[str, Any]) -> None:
        method = notification["method"]
        params = notification.get("params")

        if method == "window/logMessage":
            params = params or {}
            level = LOG_LEVELS.get(params.get("type", 4), logging.INFO)
            self.logger.log(level, f"{self.name}: {params.get('message', '')}")
        elif method == "window/showMessage":
            params = params or {}
            if params.get("type") in (MESSAGE_TYPE_ERROR, MESSAGE_TYPE_WARNING):
                self.host.show_warning_message(params.get("message", ""))

        with self._lock:
            handlers = list(self._notification_handlers.get(method, []))
        for handler in handlers:
            try:
                handler(params)
            except Exception:
                self.logger.exception(f"Handler for {method} failed")

    def send_request(self, method: str, params: Any) -> Future:
        """Send a request to the server.

        Args:
            method: The method to call.
            params: Parameters for the method.

        Returns:
            A future resolving to the result, or failing with
            :class:`RequestFailed` (:class:`RequestTimeout` on timeout).
        """
        if not self.is_running():
            future: Future = Future()
            future.set_exception(RequestFailed(f"{self.name} is not running"))
            return future
        return self._send_request(method, params, timeout=self.request_timeout)

    def _send_request(self, method: str, params: Any, timeout: Optional[float]) -> Future:
        future: Future = Future()
        with self._lock:
            request_id = str(self.next_request_id)
            self.next_request_id += 1
            self.pending_requests[request_id] = future

        if timeout is not None:
            timer = threading.Timer(timeout, self._expire_request, args=(request_id, method, timeout))
            timer.daemon = True
            timer.start()
            future.add_done_callback(lambda _: timer.cancel())

        self.write_queue.put(jsonrpc.request(request_id, method, params))
        return future

    def _expire_request(self, request_id: str, method: str, timeout: float) -> None:
        with self._lock:
            future = self.pending_requests.pop(request_id, None)
        if future is not None:
            self.logger.error(f"Timeout waiting for response to {method} request")
            future.set_exception(RequestTimeout(f"timeout after {timeout:g}s waiting for {method}"))

    def send_notification(self, method: str, params: Any) -> None:
        if not self.is_running():
            self.logger.warning(f"Dropping {method} notification: {self.name} is not running")
            return
        self._send_notification(method, params)

    def _send_notification(self, method: str, params: Any) -> None:
        self.write_queue.put(jsonrpc.notification(method, params))

    def stop(self) -> None:
        """Shut the server down and terminate its process."""
        with self._lock:
            self._stopping = True
            process = self.process
            was_running = self.is_running()

        if process is None:
            self._set_state(SessionState.STOPPED)
            return

        if was_running:
            self.logger.info(f"Stopping {self.name}")
            try:
                self._send_request("shutdown", None, timeout=2).result()
                self._send_notification("exit", None)
            except RequestFailed as e:
                self.logger.warning(f"{self.name} did not shut down cleanly: {e}")

        self.running = False
        self.write_queue.put(None)
        if self.writer_thread and self.writer_thread.is_alive():
            self.writer_thread.join(timeout=2)
        process.terminate()
        if self.reader_thread and self.reader_thread.is_alive():
            self.reader_thread.join(timeout=2)

        with self._lock:
            self.process = None
            self.write_queue = queue.Queue()
        self._set_state(SessionState.STOPPED)

    def restart(self) -> Disposable:
        """Stop the server and launch a new one."""
        self.stop()
        return self.start()
