"""Locating and launching the server process."""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Union

from lspsupervisor.errors import (
    BinaryNotFound,
    BuildFailed,
    LaunchError,
    SpawnedButErrored,
    ToolchainResolutionFailed,
)
from lspsupervisor.host import EditorHost
from lspsupervisor.output import OutputRouter
from lspsupervisor.servers.process import ProcessHandle, spawn
from lspsupervisor.servers.toolchain import ToolchainResolver


SERVER_PATH_ENV = "SERVER_PATH"
SERVER_ROOT_ENV = "SERVER_ROOT"

BUILD_AND_RUN_COMMAND = ("cargo", "run", "--release")


@dataclass(frozen=True)
class ExplicitBinaryPath:
    path: str


@dataclass(frozen=True)
class BuildAndRunAt:
    root: str


@dataclass(frozen=True)
class ToolchainResolved:
    pass


LaunchStrategy = Union[ExplicitBinaryPath, BuildAndRunAt, ToolchainResolved]


def strategy_from_environment(environ: Optional[Mapping[str, str]] = None) -> LaunchStrategy:
    """Choose the launch strategy from the environment.

    ``SERVER_PATH`` takes precedence over ``SERVER_ROOT``; with neither set the
    toolchain provides the server.

    Args:
        environ: Environment mapping, ``os.environ`` by default.

    Returns:
        The launch strategy.
    """
    environ = os.environ if environ is None else environ
    server_path = environ.get(SERVER_PATH_ENV)
    if server_path:
        return ExplicitBinaryPath(server_path)

    server_root = environ.get(SERVER_ROOT_ENV)
    if server_root:
        return BuildAndRunAt(server_root)

    return ToolchainResolved()


@dataclass(frozen=True)
class LaunchOutcome:
    """Terminal result of one launch attempt."""

    process: Optional[ProcessHandle] = None
    error: Optional[LaunchError] = None

    @property
    def ok(self) -> bool:
        return self.process is not None


class ServerLauncher:
    """Produces server processes according to a launch strategy.

    Each call to :meth:`launch` is one launch attempt and resolves exactly once.
    Non-fatal failures are reported to the host and resolve to an outcome
    carrying the error instead of raising.
    """

    def __init__(
        self,
        strategy: LaunchStrategy,
        host: EditorHost,
        router: OutputRouter,
        resolver: Optional[ToolchainResolver] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.strategy = strategy
        self.host = host
        self.router = router
        self.resolver = resolver or ToolchainResolver(on_progress=host.set_status_bar_message)
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="server-launch")
        self.logger = logging.getLogger("lspsupervisor.servers.launcher")

    def launch(self) -> "Future[LaunchOutcome]":
        """Start one launch attempt in the background."""
        self.logger.info(f"Launching server using {self.strategy}")
        return self.executor.submit(self.launch_sync)

    def launch_sync(self) -> LaunchOutcome:
        try:
            handle = self._obtain_process()
        except LaunchError as e:
            if isinstance(e.__cause__, FileNotFoundError):
                self._on_process_error(e.__cause__)
            else:
                self.logger.error(f"Could not start server process: {e}")
            self.host.set_status_bar_message("RLS could not be started")
            return LaunchOutcome(error=e)

        handle.on_error(self._on_process_error)
        self.router.attach(handle)
        handle.start_stderr_pump()
        return LaunchOutcome(process=handle)

    def _obtain_process(self) -> ProcessHandle:
        strategy = self.strategy
        if isinstance(strategy, ExplicitBinaryPath):
            try:
                return spawn([strategy.path])
            except OSError as e:
                raise BinaryNotFound(f"Could not spawn {strategy.path}: {e}") from e

        if isinstance(strategy, BuildAndRunAt):
            try:
                return spawn(BUILD_AND_RUN_COMMAND, cwd=strategy.root)
            except OSError as e:
                raise BuildFailed(f"Could not build and run the server in {strategy.root}: {e}") from e

        try:
            return self.resolver.resolve()
        except ToolchainResolutionFailed:
            raise
        except Exception as e:
            raise ToolchainResolutionFailed(str(e)) from e

    def _on_process_error(self, error: BaseException) -> None:
        if isinstance(error, FileNotFoundError):
            self.logger.error(f"Could not spawn RLS process: {error}")
            self.host.show_warning_message("Could not start RLS")
            return
        raise SpawnedButErrored(f"Server process failed: {error}") from error

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)


def make_server_options(launcher: ServerLauncher) -> Callable[[], "Future[LaunchOutcome]"]:
    """Wrap a launcher into the callback the session invokes on every (re)start."""
    return launcher.launch
