"""Startup sequence wiring the server session to the editor host."""

import logging
import os
import threading
from typing import Mapping, Optional

from lspsupervisor.commands import CommandBridge
from lspsupervisor.config import SupervisorConfiguration
from lspsupervisor.diagnostics import DiagnosticsActivityAggregator
from lspsupervisor.host import Disposable, EditorHost
from lspsupervisor.output import OutputRouter
from lspsupervisor.servers.launcher import ServerLauncher, make_server_options, strategy_from_environment
from lspsupervisor.servers.session import ServerSession
from lspsupervisor.servers.toolchain import ToolchainResolver
from lspsupervisor.tasks import add_build_tasks
from lspsupervisor.utils.spinner import Spinner


SERVER_NAME = "Rust Language Server"
DEPRECATED_CONFIG_FILE = "rls.toml"
DEPRECATED_CONFIG_WARNING = (
    "Found deprecated rls.toml. Use VSCode user settings instead (File > Preferences > Settings)"
)


def warn_on_deprecated_config(host: EditorHost) -> None:
    """Warn if the workspace still has an ``rls.toml``.

    A missing file or a filesystem error is ignored.
    """
    toml_path = os.path.join(host.workspace_path, DEPRECATED_CONFIG_FILE)
    if os.access(toml_path, os.F_OK):
        host.show_warning_message(DEPRECATED_CONFIG_WARNING)


class Supervisor:
    """Owns the server session for one activation of the host."""

    def __init__(
        self,
        host: EditorHost,
        environ: Optional[Mapping[str, str]] = None,
        resolver: Optional[ToolchainResolver] = None,
        request_timeout: float = 30.0,
    ):
        """Initialize the supervisor.

        Args:
            host: The editor host.
            environ: Environment choosing the launch strategy, ``os.environ``
                by default.
            resolver: Toolchain resolver used when no server path or root is set.
            request_timeout: Seconds before a command request is rejected.
        """
        self.host = host
        self.environ = environ
        self.resolver = resolver
        self.request_timeout = request_timeout
        self.logger = logging.getLogger("lspsupervisor")

        self.configuration: Optional[SupervisorConfiguration] = None
        self.session: Optional[ServerSession] = None
        self.launcher: Optional[ServerLauncher] = None
        self.aggregator: Optional[DiagnosticsActivityAggregator] = None
        self.commands: Optional[CommandBridge] = None
        self.config_check_thread: Optional[threading.Thread] = None

    def activate(self) -> ServerSession:
        """Run the startup sequence and start the session.

        Returns:
            The started session.
        """
        host = self.host
        host.set_status_bar_message("RLS analysis: starting up")

        self.config_check_thread = threading.Thread(
            target=warn_on_deprecated_config,
            args=(host,),
            daemon=True,
            name="deprecated-config-check",
        )
        self.config_check_thread.start()

        self.configuration = SupervisorConfiguration.load_from_settings(host.get_configuration())
        self.logger.debug(f"Loaded configuration: {self.configuration}")

        # The output channel exists before the launcher so stderr routing never sees it unset
        output_channel = host.create_output_channel(SERVER_NAME)
        router = OutputRouter(self.configuration, output_channel, host.workspace_path)
        resolver = self.resolver or ToolchainResolver(
            toolchain=self.configuration.toolchain,
            on_progress=host.set_status_bar_message,
        )
        self.launcher = ServerLauncher(strategy_from_environment(self.environ), host, router, resolver)
        self.session = ServerSession(
            SERVER_NAME,
            make_server_options(self.launcher),
            host,
            request_timeout=self.request_timeout,
        )
        self.session.on_state_change(lambda state: self.logger.info(f"{SERVER_NAME} is {state.value}"))

        self.aggregator = DiagnosticsActivityAggregator(Spinner(host.set_status_bar_message))
        self.aggregator.attach(self.session)

        self.commands = CommandBridge(self.session, host)
        host.subscriptions.append(self.commands.register())

        try:
            add_build_tasks(host)
        except OSError as e:
            self.logger.error(f"Could not write default build tasks: {e}")

        host.subscriptions.append(Disposable(self.launcher.shutdown))
        host.subscriptions.append(Disposable(router.close))
        host.subscriptions.append(self.session.start())
        return self.session

    def deactivate(self) -> None:
        """Dispose everything registered during activation."""
        self.host.dispose_subscriptions()


def activate(host: EditorHost, **kwargs) -> Supervisor:
    """Create a supervisor for ``host`` and run its startup sequence."""
    supervisor = Supervisor(host, **kwargs)
    supervisor.activate()
    return supervisor
