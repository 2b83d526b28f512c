"""Obtain the server through a rustup-managed toolchain."""

import logging
import shutil
import subprocess
from typing import Callable, List, Optional, Sequence

from lspsupervisor.errors import ToolchainResolutionFailed
from lspsupervisor.servers.process import ProcessHandle, spawn


# Components providing the server and the data it needs
SERVER_COMPONENTS = ("rls-preview", "rust-analysis", "rust-src")


class ToolchainResolver:
    """Resolves a server process via rustup, installing components if needed."""

    def __init__(
        self,
        toolchain: str = "nightly",
        rustup: str = "rustup",
        components: Sequence[str] = SERVER_COMPONENTS,
        on_progress: Optional[Callable[[str], None]] = None,
    ):
        """Initialize the resolver.

        Args:
            toolchain: The toolchain channel to run the server from.
            rustup: Name or path of the rustup executable.
            components: Components that must be installed for the server.
            on_progress: Called with a status message before long setup steps.
        """
        self.toolchain = toolchain
        self.rustup = rustup
        self.components = tuple(components)
        self.on_progress = on_progress
        self.logger = logging.getLogger("lspsupervisor.servers.toolchain")

    def resolve(self) -> ProcessHandle:
        """Make sure the server is installed and spawn it.

        Returns:
            A handle to the running server.

        Raises:
            ToolchainResolutionFailed: If rustup is missing, installation fails
                or the server could not be spawned.
        """
        rustup_path = shutil.which(self.rustup)
        if rustup_path is None:
            raise ToolchainResolutionFailed(f"{self.rustup} not found on PATH")

        if not self._has_server_component(rustup_path):
            self._install_components(rustup_path)

        try:
            return spawn([rustup_path, "run", self.toolchain, "rls"])
        except OSError as e:
            raise ToolchainResolutionFailed(f"Could not run rls via {self.rustup}: {e}") from e

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as e:
            raise ToolchainResolutionFailed(f"Could not run {' '.join(args)}: {e}") from e

    def _has_server_component(self, rustup_path: str) -> bool:
        process = self._run([rustup_path, "component", "list", "--toolchain", self.toolchain])
        if process.returncode != 0:
            raise ToolchainResolutionFailed(
                f"Could not list components of toolchain {self.toolchain}: {process.stderr.strip()}"
            )

        for line in process.stdout.splitlines():
            # e.g. "rls-preview-x86_64-unknown-linux-gnu (installed)"
            if line.startswith("rls") and "(installed)" in line:
                return True
        return False

    def _install_components(self, rustup_path: str) -> None:
        self.logger.info(f"Installing {', '.join(self.components)} for toolchain {self.toolchain}")
        if self.on_progress:
            self.on_progress("RLS: installing components")

        args = [rustup_path, "component", "add", *self.components, "--toolchain", self.toolchain]
        process = self._run(args)
        if process.returncode != 0:
            raise ToolchainResolutionFailed(
                f"Could not install {', '.join(self.components)}: {process.stderr.strip()}"
            )
        self.logger.info("Server components installed")
