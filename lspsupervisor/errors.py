"""Exceptions raised by the supervisor."""


class SupervisorError(Exception):
    """Base class for all supervisor errors."""


class LaunchError(SupervisorError):
    """The server process could not be obtained."""


class BinaryNotFound(LaunchError):
    """The explicit server binary does not exist or is not executable."""


class BuildFailed(LaunchError):
    """Building and running the server from a project root failed."""


class ToolchainResolutionFailed(LaunchError):
    """The toolchain could not provide a server process."""


class SpawnedButErrored(LaunchError):
    """An already running server process reported an unexpected error.

    Unlike the other launch errors this one is not reported and absorbed; it
    is raised out of the process error listener.
    """


class RequestFailed(SupervisorError):
    """A request to the server was rejected."""


class RequestTimeout(RequestFailed):
    """A request to the server was not answered in time."""
