"""Default build tasks written into the host configuration."""

import copy
import logging
from typing import Any, Dict

from lspsupervisor.host import EditorHost

logger = logging.getLogger("lspsupervisor.tasks")

DEFAULT_TASKS: Dict[str, Any] = {
    "version": "0.1.0",
    "command": "cargo",
    "isShellCommand": True,
    "showOutput": "always",
    "suppressTaskName": True,
    "tasks": [
        {
            "taskName": "cargo build",
            "args": ["build"],
            "isBuildCommand": True,
        },
        {
            "taskName": "cargo run",
            "args": ["run"],
        },
        {
            "taskName": "cargo test",
            "args": ["test"],
            "isTestCommand": True,
        },
    ],
}


def add_build_tasks(host: EditorHost) -> bool:
    """Write the default cargo tasks unless the host already has tasks.

    Returns:
        True if the tasks were written.
    """
    if host.get_configuration().get("tasks"):
        return False

    logger.info("No build tasks configured, adding the cargo defaults")
    host.update_configuration("tasks", copy.deepcopy(DEFAULT_TASKS))
    return True
